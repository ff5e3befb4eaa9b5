"""
Wire templates for the commands a client may send.

Templates use positional ``str.format`` fields. A bracketed tail is
optional and is rendered only when every field inside it was supplied.
"""

import re
import string

from jaraco.collections import FoldedCaseKeyedDict

_optional_tail = re.compile(r'\[([^\]]*)\]')
_formatter = string.Formatter()


class FormatArgumentError(ValueError):
    "The arguments do not satisfy the command template"


table = FoldedCaseKeyedDict(
    User='USER {0} 0 * :{1}',
    Nick='NICK {0}',
    Pass='PASS {0}',
    Join='JOIN {0}[ {1}]',
    Part='PART {0}',
    Topic='TOPIC {0} :{1}',
    Motd='MOTD',
    Privmsg='PRIVMSG {0} :{1}',
    Action='PRIVMSG {0} :\x01ACTION {1}\x01',
    Notice='NOTICE {0} :{1}',
    Whois='WHOIS {0}',
    Kick='KICK {0} {1}[ :{2}]',
    Mode='MODE {0} {1}',
    Invite='INVITE {0} {1}',
    Ping='PING {0}',
    Pong='PONG {0}',
    Quit='QUIT :{0}',
)


def _fields(fragment):
    return [
        int(field)
        for _, field, _, _ in _formatter.parse(fragment)
        if field is not None and field.isdigit()
    ]


def _resolve_optional(template, count):
    def replace(match):
        fragment = match.group(1)
        fields = _fields(fragment)
        if not fields:
            return match.group(0)
        return fragment if all(idx < count for idx in fields) else ''

    return _optional_tail.sub(replace, template)


def render(template, args):
    """
    Render a template against positional arguments.

    >>> render('NICK {0}', ['bob'])
    'NICK bob'
    >>> render(table['join'], ['#chan'])
    'JOIN #chan'
    >>> render(table['JOIN'], ['#chan', 'sekrit'])
    'JOIN #chan sekrit'
    >>> render('TOPIC {0} :{1}', ['#chan'])
    Traceback (most recent call last):
    ...
    irclink.commands.FormatArgumentError: Invalid arguments list, expected pattern: TOPIC {0} :{1}
    """
    args = tuple(args)
    try:
        return _resolve_optional(template, len(args)).format(*args)
    except (IndexError, KeyError, ValueError) as exc:
        msg = "Invalid arguments list, expected pattern: %s" % template
        raise FormatArgumentError(msg) from exc


def lookup(name):
    """
    Return the template for a command name, ignoring case.

    >>> lookup('privmsg')
    'PRIVMSG {0} :{1}'
    >>> lookup('Bogus') is None
    True
    """
    return table.get(name)
