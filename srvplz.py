#!/usr/bin/env python3

# srvplz: serve a directory over HTTP, right now, with no setup. Run it like:
#   python3 srvplz.py
# or:
#   python3 srvplz.py  ~/Desktop/Stuff
# or, once installed:
#   srvplz  [DIRECTORY]
#
# The optional parameter is the directory to serve, which defaults to the
# current working directory. It is resolved to an absolute path (following
# symlinks) once at startup and never changes afterwards.
# - The server listens on all interfaces (IPv6 and, where the platform allows,
#   IPv4 too) starting at port 8000. If that port is already in use it tries
#   8001, 8002, and so on up to 8025, then gives up.
# - Only GET and HEAD are supported. A request for a directory serves the
#   index.html inside it, if there is one. There are no directory listings.
# - One access log line per request is printed to standard output. Other
#   diagnostics go to standard error; set SRVPLZ_VERBOSE=1 to see more of them.

import email.utils    # for email.utils.formatdate(), for the Date header
import errno          # for errno.EADDRINUSE
import mimetypes      # for mimetypes.guess_type()
import os             # for file and directory stuff, like os.stat()
import re             # for matching the HTTP version and drive letters
import socket         # for socket stuff
import stat           # for stat.S_ISDIR()
import sys            # for sys.argv and sys.exit()
import threading      # for one thread per connection
import time           # for access log timestamps
import urllib.parse   # for urllib.parse.unquote_to_bytes()

# Global configuration variables.
# These never change once the server has finished initializing, so they don't
# need any special protection even if used concurrently.
BASE_PORT = 8000         # first port to try
MAX_RETRIES = 25         # so ports 8000 through 8025 are tried
LISTEN_BACKLOG = 128
INDEX_FILE = "index.html"
DEFAULT_MIME_TYPE = "application/octet-stream"
SERVER_NAME = "srvplz"
MAX_HEADER_BYTES = 64 * 1024
MAX_DISCARD_BYTES = 1024 * 1024  # largest request body read just to skip it
VERBOSE = os.environ.get("SRVPLZ_VERBOSE", "") not in ("", "0")

# This variable controls how long the server is willing to wait for data from a
# client, including how long an idle keep-alive connection is kept open. If set
# to None, the server will wait indefinitely.
SOCKET_TIMEOUT = 10.0

STATUS_PHRASES = {
    200: "OK",
    301: "Moved Permanently",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    500: "Internal Server Error",
}

# mimetypes reports compressed files as (type, encoding) pairs. We serve them
# as-is, without a Content-Encoding header, so the encoding decides the type.
ENCODING_MIME_TYPES = {
    "gzip": "application/gzip",
    "bzip2": "application/x-bzip2",
    "xz": "application/x-xz",
    "br": "application/x-brotli",
    "compress": "application/x-compress",
}


# Request objects are used to hold information associated with a single HTTP
# request from a client.
class Request:
    def __init__(self):
        self.method = ""      # GET, HEAD, POST, etc. for this request
        self.target = ""      # raw request-target, e.g. "/a%20b.txt?x=1"
        self.path = ""        # target without the query, still percent-encoded
        self.version = (1, 1) # http version for this request, as (major, minor)
        self.request_line = ""
        self.headers = []     # header lines from client for this request


# Response objects are used to hold information associated with a single HTTP
# response that will be sent to a client. The status is an integer like 200 or
# 404. Headers are (name, value) pairs, and the body is a bytes object.
class Response:
    def __init__(self, status, body=b"", headers=None):
        self.status = status
        self.body = body
        self.headers = list(headers) if headers is not None else []

    def add_header(self, name, value):
        self.headers.append((name, value))

    def get_header(self, name):
        for key, value in self.headers:
            if key.lower() == name.lower():
                return value
        return None


# Helper function to check if a string looks like a common IPv4 address. Note:
# This is intentionally picky, only accepting the most common
# 4-numbers-with-dots notation.
def is_typical_ipv4_address(s):
    parts = s.split('.')
    try:
        return len(parts) == 4 and all(0 <= int(p) < 256 for p in parts)
    except ValueError:
        return False


# SocketError objects represent errors that can occur with sockets.
class SocketError:
    def __init__(self, msg):
        self.msg = msg

    def __repr__(self):
        return "Socket Error: " + self.msg

# ERR_SOCKET_WAS_CLOSED means the other side unexpectedly closed the connection.
ERR_SOCKET_WAS_CLOSED = SocketError("Connection Closed")
# ERR_SOCKET_HAD_TIMEOUT means it's been a long time the other side sent data.
ERR_SOCKET_HAD_TIMEOUT = SocketError("Read Timeout")
# ERR_SOCKET_HAD_ERROR means something unknown went wrong.
ERR_SOCKET_HAD_ERROR = SocketError("Read/Write Failure")
# ERR_REQUEST_TOO_LARGE means the headers never ended within MAX_HEADER_BYTES.
ERR_REQUEST_TOO_LARGE = SocketError("Request Too Large")


# Connection objects are used to hold information associated with a single HTTP
# connection, like the socket for the connection, the client's address, and any
# leftover data from the client that hasn't yet been processed.
class Connection:
    def __init__(self, connected_socket, addr):
        self.sock = connected_socket  # the socket connected to the client
        self.client_addr = addr       # address tuple of the client, or None
        self.leftover_data = b""      # data from client, not yet processed
        self.num_requests = 0         # number of requests from client handled so far

    # remote_ip() returns the client's IP address for the access log, or "-".
    # IPv4 clients of a dual-stack socket show up as "::ffff:1.2.3.4", which
    # is logged as plain "1.2.3.4".
    def remote_ip(self):
        if not self.client_addr:
            return "-"
        ip = str(self.client_addr[0])
        if ip.lower().startswith("::ffff:") and is_typical_ipv4_address(ip[7:]):
            ip = ip[7:]
        return ip or "-"

    # _recv() reads up to n more bytes, giving up after SOCKET_TIMEOUT seconds.
    # The timeout is removed afterwards so sending large files is unaffected.
    def _recv(self, n):
        try:
            if SOCKET_TIMEOUT is not None:
                self.sock.settimeout(SOCKET_TIMEOUT)
            return self.sock.recv(n)
        finally:
            if SOCKET_TIMEOUT is not None:
                self.sock.settimeout(None)

    # read_until_blank_line() returns data from the client up to (but not
    # including) the next blank line, i.e. "\r\n\r\n", decoded as latin-1. The
    # "\r\n\r\n" sequence is discarded. Stray blank lines before a request are
    # skipped. Any leftovers after the blank line are saved for the next
    # request. This function returns one of the ERR_SOCKET values if an error
    # is encountered.
    def read_until_blank_line(self):
        data = self.leftover_data.lstrip(b"\r\n")
        try:
            while b"\r\n\r\n" not in data:
                if len(data) > MAX_HEADER_BYTES:
                    return ERR_REQUEST_TOO_LARGE
                more_data = self._recv(4096)
                if not more_data: # Connection has died?
                    self.leftover_data = b""
                    return ERR_SOCKET_WAS_CLOSED
                data = (data + more_data).lstrip(b"\r\n")
            data, self.leftover_data = data.split(b"\r\n\r\n", 1)
            return data.decode("iso-8859-1")
        except socket.timeout:
            debug("Client %s has not sent data in %s seconds." %
                  (self.remote_ip(), SOCKET_TIMEOUT))
            return ERR_SOCKET_HAD_TIMEOUT
        except OSError as err:
            debug("Error reading from client %s socket: %s" % (self.remote_ip(), err))
            return ERR_SOCKET_HAD_ERROR

    # read_amount(n) returns the next n bytes of data from the client. Any
    # leftovers after the n bytes are saved for later. This function returns
    # None if an error is encountered.
    def read_amount(self, n):
        data = self.leftover_data
        try:
            while len(data) < n:
                more_data = self._recv(min(n - len(data), 65536))
                if not more_data: # Connection has died?
                    self.leftover_data = b""
                    return None
                data = data + more_data
            data, self.leftover_data = (data[0:n], data[n:])
            return data
        except OSError as err:
            debug("Error reading from client %s socket: %s" % (self.remote_ip(), err))
            self.leftover_data = b""
            return None


# log(msg) prints a diagnostic message to standard error. Since multi-threading
# can jumble up the order of output on the screen, we print out the current
# thread's name on each line of output along with the message. Standard output
# is kept for the access log.
def log(msg):
    if not isinstance(msg, str):
        msg = str(msg)
    myname = threading.current_thread().name
    linebreak = "\n    : "
    msg = linebreak.join(msg.splitlines())
    print(myname + ": " + msg, file=sys.stderr, flush=True)


# debug(msg) is like log(msg), but only prints anything when VERBOSE is set.
def debug(msg):
    if VERBOSE:
        log(msg)


# fail(msg, code) reports a fatal startup problem and exits the process.
def fail(msg, code):
    print(msg, file=sys.stderr, flush=True)
    sys.exit(code)


# format_access_log() makes one line of the access log, in the usual
# "common log format" style, e.g.
#   ::1 - - [18/Oct/2026 14:03:59] "GET /index.html HTTP/1.1" 200 -
# The timestamp uses local time; when is a time.time() value, or None for now.
def format_access_log(remote, request_line, status, when=None):
    timestamp = time.strftime("%d/%b/%Y %H:%M:%S", time.localtime(when))
    return '%s - - [%s] "%s" %d -' % (remote, timestamp, request_line, status)


# log_request_line() prints one access log line to standard output. It is
# written in a single call so lines from different threads don't interleave.
def log_request_line(remote, request_line, status):
    sys.stdout.write(format_access_log(remote, request_line, status) + "\n")
    sys.stdout.flush()


# log_request() prints the access log line for one handled request. Raw UTF-8
# in the path is shown as the characters the client meant.
def log_request(remote, method, path, version, status):
    path = wire_bytes(path).decode("utf-8", "replace")
    request_line = "%s %s HTTP/%d.%d" % (method, path, version[0], version[1])
    log_request_line(remote, request_line, status)


# get_header_value() finds a specific header value from within a list of header
# lines. If the requested key is not found, None is returned instead. This will
# properly handle upper-case, lower-case, and mixed-case header names.
def get_header_value(headers, key):
    for hdr in headers:
        name, sep, val = hdr.partition(":")
        if sep and name.strip().lower() == key.lower():
            return val.strip()
    return None


# parse_request() turns the text of a request (everything before the blank
# line) into a Request object. It returns None if the request-line is
# malformed: it must be exactly three words, the target must be an
# origin-form path starting with "/", and the version must look like HTTP/x.y.
HTTP_VERSION = re.compile(r"^HTTP/(\d)\.(\d)$")

def parse_request(data):
    lines = data.split("\r\n")
    req = Request()
    req.request_line = lines[0]
    req.headers = lines[1:]
    words = req.request_line.split()
    if len(words) != 3:
        return None
    m = HTTP_VERSION.match(words[2])
    if m is None or not words[1].startswith("/"):
        return None
    req.method = words[0]
    req.target = words[1]
    req.version = (int(m.group(1)), int(m.group(2)))
    # The query string plays no part in finding a file.
    req.path = req.target.split("?", 1)[0]
    return req


# wants_keep_alive() decides whether the connection should stay open after
# responding to req. HTTP/1.1 connections are persistent unless the client asks
# to close, while HTTP/1.0 connections close unless the client asks otherwise.
def wants_keep_alive(req):
    options = (get_header_value(req.headers, "Connection") or "").lower()
    options = [opt.strip() for opt in options.split(",")]
    if req.version >= (1, 1):
        return "close" not in options
    return "keep-alive" in options


# sanitize() checks a relative path, taken from a URL after percent-decoding,
# and returns a safe filesystem-relative version of it, or None if any part of
# it could lead outside the served directory. Empty and "." components are
# dropped. A "..", a leading "/", a NUL byte, or a drive letter ("C:") as the
# first component rejects the whole path. On Windows, where a backslash is a
# separator and "C:foo" is drive-relative, any backslash and any drive prefix
# on the first component are rejected too. Elsewhere names like "a:b.txt" or
# "x\y" are ordinary file names.
WINDOWS_PATHS = os.name == "nt"
DRIVE_LETTER = re.compile(r"^[A-Za-z]:$")
DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")

def sanitize(relative_path):
    if relative_path.startswith("/"):
        return None
    parts = []
    for component in relative_path.split("/"):
        if component == "" or component == ".":
            continue
        if component == ".." or "\x00" in component:
            return None
        if not parts:
            drive = DRIVE_PREFIX if WINDOWS_PATHS else DRIVE_LETTER
            if drive.match(component):
                return None
        if WINDOWS_PATHS and "\\" in component:
            return None
        parts.append(component)
    return "/".join(parts)


# wire_bytes() recovers the bytes a client sent for a piece of the request
# line. The header block is decoded as latin-1, so encoding it the same way
# gives back the exact bytes; text from elsewhere is taken as UTF-8.
def wire_bytes(text):
    try:
        return text.encode("iso-8859-1")
    except UnicodeEncodeError:
        return text.encode("utf-8")


# decode_path() undoes %-escapes in a URL path, and decodes the resulting bytes
# (escaped or sent raw) as UTF-8. It returns None if they are not valid UTF-8.
# Malformed escapes like "%zz" are left as they are.
def decode_path(path):
    try:
        return urllib.parse.unquote_to_bytes(wire_bytes(path)).decode("utf-8")
    except UnicodeDecodeError:
        return None


# guess_mime_type() picks a Content-Type from a file's name.
def guess_mime_type(path):
    mime_type, encoding = mimetypes.guess_type(os.path.basename(path))
    if encoding is not None:
        return ENCODING_MIME_TYPES.get(encoding, DEFAULT_MIME_TYPE)
    return mime_type or DEFAULT_MIME_TYPE


# response_with_status() returns a minimal response for a status code: the
# status phrase as a plain text body, or no body at all for HEAD requests.
def response_with_status(status, method):
    if method == "HEAD":
        return Response(status)
    body = STATUS_PHRASES[status].encode()
    return Response(status, body, [("Content-Type", "text/plain; charset=utf-8")])


# build_file_response() returns a 200 response for the file at path. For GET
# the whole file is read into memory, and the Content-Length is left for
# send_http_response() to fill in from the body. For HEAD the file is not
# read at all, and Content-Length comes from the file's size on disk. Errors
# reading the file are raised as OSError.
def build_file_response(path, method):
    resp = Response(200)
    resp.add_header("Content-Type", guess_mime_type(path))
    size = os.stat(path).st_size
    if method == "HEAD":
        resp.add_header("Content-Length", str(size))
    else:
        with open(path, "rb") as f:
            resp.body = f.read()
    return resp


# route_request() maps a GET or HEAD request for a url path (percent-encoded,
# without any query) to a file under base_dir, and returns (status, response).
def route_request(path, method, base_dir):
    # "/docs/" redirects to "/docs", so each directory has one canonical URL.
    if len(path) > 1 and path.endswith("/"):
        return 301, Response(301, headers=[("Location", path[:-1])])

    decoded = decode_path(path)
    if decoded is None:
        return 400, response_with_status(400, method)

    if decoded == "/":
        target = os.path.join(base_dir, INDEX_FILE)
    else:
        # Traversal attempts get the same 404 as any other missing file.
        relative = sanitize(decoded[1:])
        if relative is None:
            debug("Rejected unsafe path: %r" % decoded)
            return 404, response_with_status(404, method)
        target = os.path.join(base_dir, relative)

    try:
        info = os.stat(target)
    except (OSError, ValueError):
        return 404, response_with_status(404, method)
    if stat.S_ISDIR(info.st_mode):
        index = os.path.join(target, INDEX_FILE)
        if not os.path.isfile(index):
            return 404, response_with_status(404, method)
        target = index

    try:
        resp = build_file_response(target, method)
    except OSError as err:
        log("Error reading %s: %s" % (target, err))
        return 500, response_with_status(500, method)
    return 200, resp


# dispatch() checks the method before routing: anything other than GET or HEAD
# is answered with 405 and an Allow header.
def dispatch(method, path, base_dir):
    if method in ("GET", "HEAD"):
        return route_request(path, method, base_dir)
    resp = response_with_status(405, method)
    resp.add_header("Allow", "GET, HEAD")
    return 405, resp


# send_http_response() sends an HTTP response to the client. Responses to HEAD
# never include a body. Every other response gets a Content-Length matching
# its body, unless one was already set. Returns False if sending failed, which
# usually means the client went away; that is logged and otherwise ignored.
def send_http_response(conn, resp, method, keep_alive):
    phrase = STATUS_PHRASES.get(resp.status, "Unknown")
    lines = ["HTTP/1.1 %d %s" % (resp.status, phrase)]
    lines.append("Server: " + SERVER_NAME)
    lines.append("Date: " + email.utils.formatdate(usegmt=True))
    for name, value in resp.headers:
        lines.append("%s: %s" % (name, value))
    body = resp.body
    if method == "HEAD":
        body = b""
    elif resp.get_header("Content-Length") is None:
        lines.append("Content-Length: %d" % len(body))
    lines.append("Connection: " + ("keep-alive" if keep_alive else "close"))
    head = ("\r\n".join(lines) + "\r\n\r\n").encode("iso-8859-1")
    try:
        conn.sock.sendall(head)
        if body:
            conn.sock.sendall(body)
    except OSError as err:
        log("Failed to send response to %s: %s" % (conn.remote_ip(), err))
        return False
    return True


# handle_one_http_request() reads one HTTP request from the client, parses it,
# decides what to do with it, sends an appropriate response back to the client,
# and logs it. It returns True if the connection should be kept open for
# another request.
def handle_one_http_request(conn, base_dir):
    data = conn.read_until_blank_line()
    if data is ERR_REQUEST_TOO_LARGE:
        log("Request headers from %s are too large" % (conn.remote_ip()))
        send_http_response(conn, response_with_status(400, "GET"), "GET", False)
        log_request_line(conn.remote_ip(), "-", 400)
        return False
    if isinstance(data, SocketError):
        # Client disconnected, went idle, or broke... caller will close socket.
        return False

    req = parse_request(data)
    if req is None:
        request_line = data.split("\r\n", 1)[0]
        debug("The request-line is malformed: %r" % (request_line))
        send_http_response(conn, response_with_status(400, "GET"), "GET", False)
        log_request_line(conn.remote_ip(), request_line, 400)
        return False

    debug("Request %d has method=%s, target=%s, version=%d.%d, and %d headers" % (
        conn.num_requests, req.method, req.target, req.version[0], req.version[1],
        len(req.headers)))

    keep_alive = wants_keep_alive(req)

    # A request body is never used, but it must be read so the next request
    # on this connection starts in the right place. Chunked or large bodies
    # are not worth reading just to throw away, so those connections get
    # closed instead.
    if (get_header_value(req.headers, "Transfer-Encoding") or "").lower() not in ("", "identity"):
        keep_alive = False
    else:
        n = get_header_value(req.headers, "Content-Length")
        if n is not None:
            try:
                length = int(n)
            except ValueError:
                length = -1
            if length < 0:
                send_http_response(conn, response_with_status(400, req.method), req.method, False)
                log_request(conn.remote_ip(), req.method, req.path, req.version, 400)
                return False
            if length > MAX_DISCARD_BYTES:
                keep_alive = False
            elif length > 0:
                if conn.read_amount(length) is None:
                    return False

    status, resp = dispatch(req.method, req.path, base_dir)
    sent = send_http_response(conn, resp, req.method, keep_alive)
    log_request(conn.remote_ip(), req.method, req.path, req.version, status)
    conn.num_requests += 1
    return sent and keep_alive


# handle_http_connection() reads one or more HTTP requests from a client,
# handles each one, and closes the connection when done.
def handle_http_connection(conn, base_dir):
    debug("Handling connection from %s" % (conn.remote_ip()))
    try:
        while handle_one_http_request(conn, base_dir):
            pass
    except Exception as err:
        # A bug here should only cost this one connection, not the server.
        log("Unexpected error on connection from %s: %r" % (conn.remote_ip(), err))
    finally:
        conn.sock.close()
        debug("Done with connection from %s after %d requests" %
              (conn.remote_ip(), conn.num_requests))


# listen_on() creates a socket of the given family, binds it to addr, and
# starts listening. Errors are raised as OSError.
def listen_on(family, addr):
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        if family == socket.AF_INET6:
            try:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
            except (OSError, AttributeError) as err:
                debug("Could not enable dual-stack listening: %s" % (err))
        # On Windows SO_REUSEADDR would let us share a port that is in use.
        if os.name != "nt":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(addr)
        sock.listen(LISTEN_BACKLOG)
    except OSError:
        sock.close()
        raise
    return sock


# open_listener() creates a listening socket on the given port on all
# interfaces. IPv6 is preferred, with IPV6_V6ONLY turned off so IPv4 clients
# can connect too; if IPv6 can't be used at all, plain IPv4 is used instead.
# A port that is already in use is raised as OSError with errno EADDRINUSE.
def open_listener(port):
    if socket.has_ipv6:
        try:
            return listen_on(socket.AF_INET6, ("::", port))
        except OSError as err:
            if err.errno == errno.EADDRINUSE:
                raise
            debug("Could not listen on IPv6 (%s), using IPv4" % (err))
    return listen_on(socket.AF_INET, ("0.0.0.0", port))


# bind_server() tries ports base_port, base_port+1, ..., base_port+max_retries
# in order, moving on only when a port is already in use, and returns the
# listening socket along with the port it got. Any other error, or running out
# of ports, is fatal and exits with code 1.
def bind_server(base_port=BASE_PORT, max_retries=MAX_RETRIES, opener=open_listener):
    for offset in range(max_retries + 1):
        port = base_port + offset
        try:
            return opener(port), port
        except OSError as err:
            if err.errno != errno.EADDRINUSE:
                fail("Failed to bind port %d: %s" % (port, err), 1)
            debug("Port %d is already in use" % (port))
    fail("Failed to bind any port in range %d-%d after %d retries." %
         (base_port, base_port + max_retries, max_retries), 1)


# resolve_base_dir() turns the directory argument into an absolute path with
# all symlinks resolved, exiting with code 2 if it doesn't exist or isn't a
# directory.
def resolve_base_dir(directory):
    try:
        base_dir = os.path.realpath(directory, strict=True)
    except OSError as err:
        fail("Invalid directory: %s" % (err), 2)
    if not os.path.isdir(base_dir):
        fail("Not a directory: %s" % (base_dir), 2)
    return base_dir


# serve_forever() repeatedly accepts connections on the listening socket and
# starts a handler thread for each one. Handlers share nothing but base_dir,
# which never changes. Setting the optional stop event, then closing the
# socket, ends the loop.
def serve_forever(listener, base_dir, stop=None):
    while stop is None or not stop.is_set():
        try:
            sock, client_addr = listener.accept()
        except OSError as err:
            if stop is not None and stop.is_set():
                break
            log("Error accepting connection: %s" % (err))
            continue
        conn = Connection(sock, client_addr)
        t = threading.Thread(target=handle_http_connection, args=(conn, base_dir))
        t.daemon = True
        t.start()


# url_host() formats the address a socket is bound to for use in a URL.
def url_host(host):
    return "[%s]" % host if ":" in host else host


# main() is the command line entry point: srvplz [directory]
def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]
    if len(argv) > 1:
        fail("Usage: srvplz [directory]", 2)
    base_dir = resolve_base_dir(argv[0] if argv else os.getcwd())

    listener, port = bind_server()
    host = listener.getsockname()[0]
    print("Serving HTTP on %s port %d (http://%s:%d/) ..." %
          (host, port, url_host(host), port), flush=True)
    debug("Serving files from directory %s" % (base_dir))

    try:
        serve_forever(listener, base_dir)
    except KeyboardInterrupt:
        log("Shutting down...")
    finally:
        listener.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
