"""
Reply codes and verbs recognized by the protocol engine.
"""

RPL_WHOISUSER = '311'
RPL_NAMREPLY = '353'
RPL_MOTD = '372'
RPL_MOTDSTART = '375'
RPL_ENDOFMOTD = '376'
RPL_NOMOTD = '422'

numeric = {
    RPL_WHOISUSER: 'whoisuser',
    RPL_NAMREPLY: 'namreply',
    RPL_MOTD: 'motd',
    RPL_MOTDSTART: 'motdstart',
    RPL_ENDOFMOTD: 'endofmotd',
    RPL_NOMOTD: 'nomotd',
}

protocol = [
    "privmsg",
    "notice",
]

substantive = frozenset(
    [RPL_ENDOFMOTD, RPL_NOMOTD, RPL_WHOISUSER]
    + [verb.upper() for verb in protocol]
)
"Verbs raised to the caller as message events; everything else is dropped."


def name(verb):
    """
    Return a readable name for a verb.

    >>> name('376')
    'endofmotd'
    >>> name('PRIVMSG')
    'privmsg'
    """
    return numeric.get(verb, verb.lower())
