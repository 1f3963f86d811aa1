import unittest

from fakes import FakeConnection, con
from oi3h import Border, IPCError, current_border, find_largest_tiled_window


class LargestWindowTests(unittest.TestCase):
    def test_nested_containers(self):
        small = con("small", window=1, size=(100, 100))
        large = con("large", window=2, size=(400, 300))
        split = con(None, nodes=[small, large])
        other = con("other", window=3, size=(200, 200))
        workspace = con("1", con_type="workspace", nodes=[other, split])
        self.assertIs(find_largest_tiled_window(workspace), large)

    def test_wayland_windows(self):
        native = con("native", app_id="foot", size=(500, 500))
        xwayland = con("x", window=5, size=(10, 10))
        workspace = con("1", con_type="workspace", nodes=[xwayland, native])
        self.assertIs(find_largest_tiled_window(workspace), native)

    def test_tie_prefers_later_window(self):
        first = con("first", window=1, size=(10, 10))
        second = con("second", window=2, size=(10, 10))
        workspace = con("1", con_type="workspace", nodes=[first, second])
        self.assertIs(find_largest_tiled_window(workspace), second)

    def test_floating_ignored(self):
        floating = con("floating", window=9, size=(1000, 1000))
        workspace = con("1", con_type="workspace")
        workspace.floating_nodes = [floating]
        self.assertIsNone(find_largest_tiled_window(workspace))


class CurrentBorderTests(unittest.TestCase):
    def test_pixel(self):
        focused = con("term", window=1, border="pixel",
                      current_border_width=3)
        self.assertEqual(current_border(FakeConnection(focused)),
                         Border("pixel", 3))

    def test_none_has_no_width(self):
        focused = con("term", window=1, border="none",
                      current_border_width=0)
        self.assertEqual(current_border(FakeConnection(focused)),
                         Border("none", None))

    def test_nothing_focused(self):
        with self.assertRaisesRegex(IPCError, "Unable to find focused node"):
            current_border(FakeConnection(None))


if __name__ == "__main__":
    unittest.main()
