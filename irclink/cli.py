"""
Connect to a server, optionally join a channel, and print the messages
received until interrupted.
"""

import argparse
import threading

from . import bot
from . import logging as irclink_logging


def get_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.strip())
    parser.add_argument('server')
    parser.add_argument('nickname')
    parser.add_argument('-p', '--port', default=6667, type=int)
    parser.add_argument('--password', help="server password")
    parser.add_argument('--tls', action='store_true', help="connect using TLS")
    parser.add_argument(
        '--no-verify',
        dest='verify',
        action='store_false',
        help="accept any server certificate",
    )
    parser.add_argument('--cert', help="PEM file with client certificate and key")
    parser.add_argument('--cert-password', help="passphrase for --cert")
    parser.add_argument(
        '--reconnect-delay',
        default=bot.FixedDelay.delay,
        type=float,
        help="seconds to wait before reconnecting",
    )
    parser.add_argument('--join', metavar='CHANNEL', help="channel to join")
    irclink_logging.add_arguments(parser)
    return parser.parse_args(argv)


def build(args):
    client = bot.SingleServerBot(
        bot.ServerSpec(args.server, args.port, args.password),
        args.nickname,
        recon=bot.FixedDelay(delay=args.reconnect_delay),
        use_tls=args.tls,
        verify=args.verify,
    )
    if args.cert:
        client.set_certificate(args.cert, args.cert_password)

    def on_message(reactor, message):
        if args.join and message.verb in ('376', '422'):
            reactor.join(args.join)
        print(message)

    client.add_global_handler('message', on_message)
    return client


def main(argv=None):
    args = get_args(argv)
    irclink_logging.setup(args)
    client = build(args)
    if not client.connect():
        client.close()
        raise SystemExit(1)
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        client.close("Using irclink")


if __name__ == '__main__':
    main()
