"""
Blocking TCP socket primitives shared by every channel.

Network errors are logged and reported through return values (None, False
or a short byte string) so that receive loops can treat them as a
disconnect without any exception crossing a thread boundary. A read that
returns fewer bytes than requested is the universal disconnect signal.
"""

import logging
import select
import socket
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

# Matches the buffer sizes the controller side is tuned for
SOCKET_BUFFER_SIZE = 4096


def _configure(sock: socket.socket):
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, SOCKET_BUFFER_SIZE)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, SOCKET_BUFFER_SIZE)


class SocketTransport:
    """
    Thin wrapper around a blocking TCP socket.

    Instances are created through :meth:`connect`, :meth:`listen` or
    :meth:`accept`; the constructor only wraps an existing socket.
    """

    def __init__(self, sock: socket.socket, peer: Optional[Tuple[str, int]] = None):
        self.sock = sock
        self.peer = peer
        self.closed = False

    @classmethod
    def connect(cls, host: str, port: int, timeout: float = 5.0) -> Optional['SocketTransport']:
        """
        Open a client connection.

        Args:
            host: Hostname or IP address
            port: TCP port
            timeout: Connect timeout in seconds

        Returns:
            Connected transport, or None if the connection failed
        """
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as e:
            logger.error(f"Failed to connect to {host}:{port}: {e}")
            return None

        try:
            _configure(sock)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            # Reads are bounded by poll_readable, not by a socket timeout
            sock.settimeout(None)
        except OSError as e:
            logger.error(f"Failed to configure socket for {host}:{port}: {e}")
            sock.close()
            return None

        logger.debug(f"Connected to {host}:{port}")
        return cls(sock, (host, port))

    @classmethod
    def listen(cls, port: int, host: str = "0.0.0.0", backlog: int = 5) -> Optional['SocketTransport']:
        """
        Open a listening socket on which to accept() connections.

        Returns:
            Listening transport, or None if bind/listen failed
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            _configure(sock)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(backlog)
        except OSError as e:
            logger.error(f"Failed to listen on {host}:{port}: {e}")
            sock.close()
            return None

        logger.debug(f"Listening on {host}:{sock.getsockname()[1]}")
        return cls(sock)

    def accept(self, timeout: Optional[float] = None) -> Optional['SocketTransport']:
        """
        Accept one inbound connection.

        Args:
            timeout: Seconds to wait for the peer, None blocks indefinitely

        Returns:
            Transport for the accepted connection, or None on timeout/error
        """
        try:
            self.sock.settimeout(timeout)
            conn, addr = self.sock.accept()
        except socket.timeout:
            logger.error(f"No inbound connection within {timeout}s")
            return None
        except OSError as e:
            logger.error(f"Error accepting connection: {e}")
            return None

        conn.settimeout(None)
        conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        logger.debug(f"Accepted connection from {addr[0]}:{addr[1]}")
        return SocketTransport(conn, addr)

    @property
    def port(self) -> int:
        """Local port the socket is bound to."""
        return self.sock.getsockname()[1]

    def local_address(self) -> str:
        """Local IP address of this end of the connection."""
        return self.sock.getsockname()[0]

    def poll_readable(self, timeout: float) -> bool:
        """
        Wait until the socket has data (or EOF) to read.

        Returns:
            True if a read will not block, False on timeout or error
        """
        if self.closed:
            return False
        try:
            readable, _, _ = select.select([self.sock], [], [], timeout)
        except (OSError, ValueError) as e:
            logger.debug(f"poll failed: {e}")
            return False
        return bool(readable)

    def read_exact(self, n: int) -> bytes:
        """
        Repeated read until n bytes are received.

        Returns:
            The n bytes, or whatever was read before the peer closed or an
            error occurred (a short read)
        """
        chunks = []
        remaining = n
        while remaining > 0:
            try:
                chunk = self.sock.recv(remaining)
            except OSError as e:
                logger.debug(f"recv failed: {e}")
                break
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def read_some(self, max_bytes: int) -> bytes:
        """Single recv of up to max_bytes; b'' means the peer is gone."""
        try:
            return self.sock.recv(max_bytes)
        except OSError as e:
            logger.debug(f"recv failed: {e}")
            return b""

    def write_all(self, data: bytes) -> bool:
        """
        Repeated send until all of data is sent.

        Returns:
            True if every byte was written, False on a short write
        """
        if self.closed:
            return False
        try:
            self.sock.sendall(data)
        except OSError as e:
            logger.error(f"send failed: {e}")
            return False
        return True

    def close(self):
        """Close the socket. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        try:
            self.sock.close()
        except OSError as e:
            logger.warning(f"Error closing socket: {e}")
