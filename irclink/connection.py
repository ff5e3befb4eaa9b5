import functools
import socket
import ssl


def identity(x):
    return x


class Factory:
    """
    A class for creating custom socket connections.

    To create a simple connection:

    .. code-block:: python

       server_address = ('localhost', 6667)
       Factory()(server_address)

    To create a TLS connection:

    .. code-block:: python

       wrapper = tls_wrapper('irc.libera.chat')
       Factory(wrapper=wrapper)(('irc.libera.chat', 6697))

    To create an IPv6 connection:

    .. code-block:: python

       Factory(ipv6=True)(server_address)

    The wrapper is applied once the TCP connection is established, so a
    failed TLS handshake closes the raw socket instead of leaving a
    half-open stream behind.

    Note that Factory doesn't save the state of the socket itself. The
    caller must do that, as necessary. As a result, the Factory may be
    re-used to create new connections with the same settings.
    """

    family = socket.AF_INET

    def __init__(self, bind_address=None, wrapper=identity, ipv6=False):
        self.bind_address = bind_address
        self.wrapper = wrapper
        if ipv6:
            self.family = socket.AF_INET6

    def connect(self, server_address):
        sock = socket.socket(self.family, socket.SOCK_STREAM)
        try:
            self.bind_address and sock.bind(self.bind_address)
            sock.connect(server_address)
            return self.wrapper(sock)
        except Exception:
            sock.close()
            raise

    __call__ = connect


def tls_context(verify=True, certfile=None, password=None):
    """
    Build a client-side SSL context.

    verify -- When false, any server certificate is accepted.

    certfile -- Path to a PEM file holding the client certificate
                together with its private key. Key-only files are not
                supported and fail to load.

    password -- Passphrase for the private key in certfile, if any.
    """
    context = ssl.create_default_context()
    if not verify:
        # check_hostname must be off before verify_mode can be relaxed
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    if certfile:
        context.load_cert_chain(certfile, password=password)
    return context


def tls_wrapper(server, verify=True, certfile=None, password=None, context=None):
    """
    Return a Factory wrapper that performs the TLS handshake with server.

    A caller-supplied context overrides the validation policy entirely.
    """
    if context is None:
        context = tls_context(verify, certfile, password)
    return functools.partial(context.wrap_socket, server_hostname=server)
