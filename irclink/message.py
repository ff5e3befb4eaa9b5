import collections
import re

_nick_pattern = re.compile(r':?([^!:\s]+)!(\S+)')


class ParsedMessage(
    collections.namedtuple(
        'ParsedMessage', 'verb source target text text_parts nick host'
    )
):
    """
    A single line received from the server.

    >>> msg = ParsedMessage.parse(':nick!user@host PRIVMSG #chan :hello there')
    >>> msg.verb, msg.target, msg.text
    ('PRIVMSG', '#chan', 'hello there')
    >>> msg.nick, msg.host
    ('nick', 'user@host')
    >>> msg.text_parts
    ('hello', 'there')

    Lines without a prefix carry only a verb and the (unstripped) text.

    >>> msg = ParsedMessage.parse('PING :tungsten.libera.chat')
    >>> msg.verb, msg.text
    ('PING', ':tungsten.libera.chat')
    >>> msg.source is None and msg.target is None
    True
    """

    __slots__ = ()

    @classmethod
    def parse(cls, line):
        """
        Parse a raw line into a ParsedMessage.

        Parsing never fails; fields that cannot be determined are left
        as None (or empty, for ``text``).

        >>> ParsedMessage.parse(':server 376 me').text
        ''
        >>> ParsedMessage.parse('').verb
        ''
        """
        parts = line.split(' ', 3)
        if len(parts) == 2:
            verb, text = parts
            return cls.create(verb, text=text)
        if len(parts) < 2:
            return cls.create(parts[0])

        source, verb, target = parts[:3]
        text = ''
        if len(parts) == 4:
            text = parts[3][1:] if parts[3].startswith(':') else parts[3]
        nick = host = None
        match = _nick_pattern.search(source)
        if match:
            nick, host = match.groups()
        return cls.create(verb, source, target, text, nick, host)

    @classmethod
    def create(cls, verb, source=None, target=None, text='', nick=None, host=None):
        """
        Construct a message, deriving ``text_parts`` from ``text`` once.
        """
        text_parts = tuple(text.split(' '))
        return cls(verb, source, target, text, text_parts, nick, host)

    def __str__(self):
        tmpl = "verb: {verb}, source: {source}, target: {target}, text: {text}"
        return tmpl.format(**self._asdict())
