#!/usr/bin/env python3
"""Small helpers for the I3 and SWAY window managers.

Cycle the border of the focused window through a list of border styles and
inspect the layout tree, using the IPC interface of I3 and SWAY.  """

import argparse
import collections
import logging
import re
import shlex
import sys
import i3ipc


###############################################################################
# Constants                                                                   #
###############################################################################

BORDER_STYLES = ['none', 'normal', 'pixel']

# The width used by I3 and SWAY for 'border normal|pixel' without a width.
DEFAULT_BORDER_WIDTH = 2

DUPLICATE_MESSAGE = 'Set of border states to toggle should be unique'

WINDOW_TYPES = [
    'normal', 'dialog', 'utility', 'toolbar', 'splash', 'menu',
    'dropdown_menu', 'popup_menu', 'tooltip', 'notification'
    ]

URGENCY = {
    'latest': 'latest',
    'newest': 'latest',
    'recent': 'latest',
    'last': 'latest',
    'oldest': 'oldest',
    'first': 'oldest'
    }

REGEX_CRITERIA = [
    'class', 'instance', 'window_role', 'title', 'workspace', 'con_mark'
    ]

FLAG_CRITERIA = ['floating', 'tiling']

COMMANDS = ['border', 'window']

LOG_LEVELS = ['debug', 'info', 'warning', 'error', 'critical']

Border = collections.namedtuple('Border', ['style', 'width'])
Match = collections.namedtuple('Match', ['key', 'value'])


###############################################################################
# Errors                                                                      #
###############################################################################

class Oi3hError(Exception):
    """Base class of all errors reported to the user."""


class UsageError(Oi3hError):
    """Malformed command line arguments."""


class DuplicateStyleError(UsageError):
    """The list of border styles to toggle contains a duplicate."""

    def __init__(self, border):
        super().__init__(DUPLICATE_MESSAGE)
        self.border = border


class IPCError(Oi3hError):
    """Failure talking to the window manager."""


class ArgumentParser(argparse.ArgumentParser):
    """Argument parser raising usage errors instead of exiting."""

    def error(self, message):
        raise UsageError('{}: error: {}'.format(self.prog, message))


###############################################################################
# Border states                                                               #
###############################################################################

def parse_border(text):
    """Parse a border state such as 'none', 'normal' or 'pixel 2'.

    Parameters
    ----------
    text : str
        The border style, optionally followed by a width in pixels

    Returns
    -------
    Border
        The parsed border state, the width is None when omitted

    """
    tokens = text.split()
    if not tokens:
        raise UsageError('Expected at least one token')
    if len(tokens) > 2:
        raise UsageError("'{}': Expected a border style and an optional width"
                         .format(text))
    style = tokens[0].lower()
    if style not in BORDER_STYLES:
        raise UsageError("'{}': Expected one of: 'none', 'normal', 'pixel'"
                         .format(tokens[0]))
    width = None
    if len(tokens) == 2:
        if style == 'none':
            raise UsageError("'{}': The 'none' border takes no width"
                             .format(text))
        try:
            width = int(tokens[1])
        except ValueError:
            raise UsageError("'{}': invalid width".format(tokens[1])) from None
        if width < 0:
            raise UsageError("'{}': invalid width".format(tokens[1]))
    return Border(style, width)


def format_border(border):
    """Format a border state the way the border command expects it."""
    if border.width is None or border.style == 'none':
        return border.style
    return '{} {}'.format(border.style, border.width)


def effective_width(border, default_width=DEFAULT_BORDER_WIDTH):
    """Return the width the window manager applies for a border state."""
    if border.style == 'none':
        return 0
    if border.width is None:
        return default_width
    return border.width


def borders_equal(first, second, match_width=False,
                  default_width=DEFAULT_BORDER_WIDTH):
    """Compare two border states.

    The layout tree reports border widths in DPI-scaled pixels while the
    border command takes logical pixels, so by default only the style is
    compared. With `match_width` the effective widths have to agree as well.

    """
    if first.style != second.style:
        return False
    if not match_width:
        return True
    return (effective_width(first, default_width)
            == effective_width(second, default_width))


def check_unique(borders, match_width=False,
                 default_width=DEFAULT_BORDER_WIDTH):
    """Raise DuplicateStyleError if two border states compare equal."""
    for ind, border in enumerate(borders):
        for other in borders[:ind]:
            if borders_equal(border, other, match_width, default_width):
                raise DuplicateStyleError(border)


def resolve_border(current, borders, match_width=False,
                   default_width=DEFAULT_BORDER_WIDTH):
    """Select the border state following the current one.

    Parameters
    ----------
    current : Border
        The border state of the focused window
    borders : list of Border
        The border states to cycle through
    match_width : bool
        Whether the widths take part in the comparison
    default_width : int
        The width of a border state given without a width

    Returns
    -------
    Border
        The entry after the one matching the current state, wrapping around
        to the first entry, or the first entry if nothing matches

    """
    if not borders:
        raise UsageError('Expected at least one border state to toggle')
    check_unique(borders, match_width, default_width)
    for ind, border in enumerate(borders):
        if borders_equal(current, border, match_width, default_width):
            return borders[(ind + 1) % len(borders)]
    return borders[0]


def border_of(con):
    """Return the border state of a container."""
    if con.border == 'none':
        return Border('none', None)
    return Border(con.border, con.current_border_width)


def get_tree(ipc):
    """Fetch the layout tree."""
    try:
        return ipc.get_tree()
    except Exception as err:
        raise IPCError('Unable to read the layout tree: {}'
                       .format(err)) from err


def current_border(ipc):
    """Return the border state of the focused window."""
    focused = get_tree(ipc).find_focused()
    if focused is None:
        raise IPCError('Unable to find focused node')
    return border_of(focused)


###############################################################################
# Criteria                                                                    #
###############################################################################

def parse_integer(key, param):
    """Parse a decimal or hexadecimal (0x) integer criteria value."""
    try:
        if param.lower().startswith('0x'):
            return int(param[2:], 16)
        return int(param)
    except ValueError:
        raise UsageError('{}: invalid integer {!r}'
                         .format(key, param)) from None


def parse_criteria(token):
    """Parse a single command criteria token such as 'class="^Firefox$"'.

    The bracket tokens '[' and ']' are accepted and yield None.

    """
    key, sep, param = token.partition('=')
    key = key.lower()
    if len(param) > 1 and param.startswith('"') and param.endswith('"'):
        param = param[1:-1]
    if key in ['[', ']']:
        return None
    if key in FLAG_CRITERIA:
        return Match(key, None)
    if key not in REGEX_CRITERIA + ['window_type', 'urgent', 'id', 'con_id']:
        raise UsageError("Unknown criteria: '{}'".format(token))
    if not sep:
        raise UsageError('{} requires a parameter'.format(key))

    if key in REGEX_CRITERIA:
        try:
            re.compile(param)
        except re.error as err:
            raise UsageError('{}: {}'.format(key, err)) from None
        return Match(key, param)
    if key == 'window_type':
        if param.lower() not in WINDOW_TYPES:
            raise UsageError("Unknown window_type: '{}'".format(param))
        return Match(key, param.lower())
    if key == 'urgent':
        if param.lower() not in URGENCY:
            raise UsageError("Unknown urgency: '{}'".format(param))
        return Match(key, URGENCY[param.lower()])
    if key == 'con_id' and param == '__focused__':
        return Match(key, param)
    return Match(key, parse_integer(key, param))


def split_criteria(value):
    """Split a criteria string on whitespace, honouring quotes.

    Backslashes are kept, they belong to the regular expressions.

    """
    lexer = shlex.shlex(value, posix=True)
    lexer.whitespace_split = True
    lexer.escape = ''
    try:
        return list(lexer)
    except ValueError as err:
        raise UsageError('criteria: {}'.format(err)) from None


def join_criteria(argv):
    """Join criteria given as separate tokens up to a closing ']'.

    'oi3h -c class=x floating ] border' is rewritten to a single --criteria
    value. Tokens are collected until a ']' token, an option or a command;
    without a closing ']' the arguments are left untouched.

    """
    argv = list(argv)
    joined = []
    ind = 0
    while ind < len(argv):
        joined.append(argv[ind])
        if argv[ind] not in ['-c', '--criteria']:
            ind += 1
            continue
        end = ind + 1
        while (end < len(argv) and argv[end] != ']'
               and not argv[end].startswith('-')
               and argv[end] not in COMMANDS):
            end += 1
        if end < len(argv) and argv[end] == ']' and end > ind + 1:
            joined.append(' '.join(shlex.quote(x) for x in argv[ind + 1:end]))
            ind = end + 1
        else:
            ind += 1
    return joined


def parse_criteria_arguments(values):
    """Parse the values of all --criteria options."""
    matches = []
    for value in values or []:
        value = value.strip()
        if value.startswith('[') and value.endswith(']'):
            value = value[1:-1]
        for token in split_criteria(value):
            match = parse_criteria(token)
            if match:
                matches.append(match)
    return matches


def format_criteria(matches):
    """Format criteria as the prefix of a command, empty without criteria."""
    if not matches:
        return ''
    parts = []
    for match in matches:
        if match.value is None:
            parts.append(match.key)
        else:
            value = str(match.value).replace('"', '\\"')
            parts.append('{}="{}"'.format(match.key, value))
    return '[{}]'.format(' '.join(parts))


###############################################################################
# Layout tree                                                                 #
###############################################################################

def holds_window(con):
    """Whether a container holds an X11 or a native Wayland window."""
    return bool(con.window or getattr(con, 'app_id', None))


def window_area(con):
    """Return the area of the window of a container."""
    return con.window_rect.width * con.window_rect.height


def find_largest_tiled_window(parent):
    """Find the largest tiled window below a container.

    Floating windows are ignored. On ties the window found last wins.

    Parameters
    ----------
    parent : i3ipc.Con
        An i3ipc container, usually a workspace

    Returns
    -------
    i3ipc.Con or None
        The largest tiled window, None if there are no tiled windows

    """
    largest = None
    for con in parent.nodes:
        if con.type == 'con' and holds_window(con):
            candidate = con
        else:
            candidate = find_largest_tiled_window(con)
        if candidate is None:
            continue
        if largest is None or window_area(candidate) >= window_area(largest):
            largest = candidate
    return largest


###############################################################################
# Helper functions                                                            #
###############################################################################

def connect():
    """Connect to the running window manager."""
    try:
        return i3ipc.Connection()
    except Exception as err:
        raise IPCError('Unable to connect to the window manager: {}'
                       .format(err)) from err


def execute_commands(ipc, commands, preamble='Executing:'):
    """Execute a chain of commands.

    Every command and its reply are logged, a failing command raises an
    IPCError.

    """
    if isinstance(commands, list):
        commands = [x for x in commands if x]
    elif commands:
        commands = [commands]
    if not commands:
        return []
    if preamble:
        logging.debug(preamble)
    try:
        reply = ipc.command('; '.join(commands))
    except Exception as err:
        raise IPCError('Unable to send command: {}'.format(err)) from err
    errors = []
    for ind, cmd in enumerate(commands):
        if ind >= len(reply):
            break
        logging.debug('+ %s => %s', cmd, reply[ind].ipc_data)
        if not reply[ind].success:
            logging.error(reply[ind].error)
            errors.append('{}: {}'.format(cmd, reply[ind].error))
    if errors:
        raise IPCError('Command failed: {}'.format('; '.join(errors)))
    return reply


def border_command(border, criteria=None):
    """Build the command applying a border state."""
    return ' '.join(x for x in [format_criteria(criteria), 'border',
                                format_border(border)] if x)


###############################################################################
# Subcommands                                                                 #
###############################################################################

def oi3h_border(args, criteria, ipc_factory=connect):
    """Toggle the border of the focused window, or print the current one.

    Parameters
    ----------
    args : argparse.Namespace
        The parsed command line arguments
    criteria : list of Match
        The criteria selecting the containers the command applies to
    ipc_factory : callable
        Returns an i3ipc connection

    """
    borders = [parse_border(x) for x in args.toggle or []]
    if args.toggle is not None:
        logging.info('Border::toggle')
        check_unique(borders, args.match_width, args.default_width)
    ipc = ipc_factory()
    current = current_border(ipc)
    logging.debug('Current border: %s', format_border(current))
    if args.toggle is None:
        print(format_border(current))
        return
    border = resolve_border(current, borders, args.match_width,
                            args.default_width)
    execute_commands(ipc, border_command(border, criteria))


def oi3h_window(args, criteria, ipc_factory=connect):
    """Print the focused window and the largest tiled window."""
    # pylint: disable=unused-argument
    logging.info('Window::largest')
    ipc = ipc_factory()
    focused = get_tree(ipc).find_focused()
    if focused is None:
        raise IPCError('Unable to find focused node')
    workspace = focused.workspace()
    if workspace is None:
        raise IPCError('Unable to find focused workspace')
    largest = find_largest_tiled_window(workspace)
    print('focused window: {}'.format(focused.name))
    print('focused workspace: {}'.format(workspace.name))
    print('largest window: {}'
          .format(largest.name if largest is not None else None))


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = ArgumentParser(
        prog='oi3h',
        description="""Small helpers for the I3 and SWAY window managers.""")

    parser.add_argument(
        '--log-level',
        default='warning',
        help="""The logging level: debug, info, warning [default], error, or
        critical.""")

    parser.add_argument(
        '-c', '--criteria',
        action='append',
        help="""Command criteria for the subsequent command, either quoted
        as one argument, e.g. 'class="^Firefox$" tiling', or as separate
        arguments terminated by a single ']' argument. May be given more
        than once.""")

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True

    border = subparsers.add_parser(
        'border',
        help="""Modify the window border.""")
    border.add_argument(
        '-t', '--toggle',
        nargs='+',
        metavar='STYLE',
        help="""Toggle between a list of border styles: none, normal [width],
        or pixel [width]. Quote a style together with its width.""")
    border.add_argument(
        '--match-width',
        action='store_true',
        help="""Compare the border widths as well as the styles when looking
        up the current border in the toggle list.""")
    border.add_argument(
        '--default-width',
        type=int,
        default=DEFAULT_BORDER_WIDTH,
        help="""The width of a border style given without a width
        [default: %(default)s].""")
    border.set_defaults(func=oi3h_border)

    window = subparsers.add_parser(
        'window',
        help="""Find the largest tiled window on the focused workspace.""")
    window.set_defaults(func=oi3h_window)

    if argv is None:
        argv = sys.argv[1:]
    args = parser.parse_args(join_criteria(argv))

    # Check the logging level argument.
    if args.log_level.lower() not in LOG_LEVELS:
        raise UsageError('Invalid log level: {}'.format(args.log_level))

    if args.command == 'border' and args.default_width < 0:
        raise UsageError('Invalid default width: {}'
                         .format(args.default_width))
    return args


def main(argv=None, ipc_factory=connect):
    """Run a single command and return the exit status."""
    try:
        args = parse_arguments(argv)
        logging.basicConfig(
            format='%(asctime)s %(levelname)s: %(message)s',
            level=getattr(logging, args.log_level.upper()))
        criteria = parse_criteria_arguments(args.criteria)
        logging.debug('Criteria: %s', format_criteria(criteria))
        args.func(args, criteria, ipc_factory)
    except Oi3hError as err:
        logging.debug('%s', err.__class__.__name__, exc_info=True)
        print(err, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
