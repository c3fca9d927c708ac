# This module is based on the original work done by Giampaolo Rodola and pyftpdlib authors.
# This is a heavily customized version that serves a minimal verb set with gevent and per-user sandboxes.

import logging

import fs.errors
from gevent import socket

from sandftp.core.fs_utils import (
    Authorization,
    Role,
    SandboxViolation,
    copy_files,
    resolve_path,
    to_virtual_path,
    user_root,
)
from sandftp.protocols.ftp.ftp_base_handler import FTPHandlerBase
from sandftp.protocols.ftp.ftp_utils import (
    CANNOT_OPEN_DATA_CONNECTION,
    CLOSING_DATA_CONNECTION,
    COMMAND_ARGS_ERROR,
    COMMAND_NOT_DEFINED,
    COMMAND_RUN_FAIL,
    COMMAND_RUN_SUCCESS,
    DATA_CONNECTION_OPEN,
    ENTERING_PASSIVE_MODE,
    FILE_COMMAND_RUN_SUCCESS,
    NEED_PASSWORD,
    NEED_USERNAME,
    NOT_LOGGED_IN,
    PATH_INVALID,
    TRANSFER_ABORTED,
    FTPDataConnectionError,
)
from sandftp.protocols.ftp.passive import PassiveEndpoint

logger = logging.getLogger(__name__)

ACCESS_DENIED = "Access denied: attempt to access outside of designated directory."

# -----------------------------------------------------
# *Implementation Note*: Session states
# -----------------------------------------------------
# unauthenticated --username--> pending password --password(ok)--> authorized{admin|user}
# login is only a prompt for a username. There is no way back to unauthenticated on the same connection: a wrong
# password leaves the session where it was, a new username only replaces the pending identity and never the identity
# an authorization was granted to.
# -----------------------------------------------------


class FTPCommandChannel(FTPHandlerBase):
    """
    FTP Command Responder. Every do_* method returns a (success, code, message) triple which the control loop sends
    back to the client.
    """

    _ac_in_buffer_size = 65536  # data channel read size
    _ac_out_buffer_size = 65536  # data channel write size

    def __init__(self, client_sock, client_address):
        super(FTPCommandChannel, self).__init__(client_sock, client_address)
        # Authorization(role, identity) once a password was accepted
        self.authorization = None
        # virtual path, '/' is the user root
        self.working_dir = "/"
        # pending passive endpoint - at most one per session
        self._pasv = None

    @property
    def authorized(self):
        return self.authorization is not None

    @property
    def identity(self):
        return self.authorization.identity if self.authorized else None

    @property
    def state(self):
        if self.authorized:
            return "authorized"
        if self.username:
            return "pending_password"
        return "unauthenticated"

    @property
    def pending_endpoint(self):
        return self._pasv

    # -- Command dispatch -------

    def dispatch(self, verb, args):
        """Check that a verb is legal in the current state and call the proper do_* method."""
        verb = verb.lower()
        if verb not in self.config.COMMANDS:
            return False, COMMAND_NOT_DEFINED, "Command not recognized."
        cmd = self.config.COMMANDS[verb]
        if cmd["auth"] and not self.authorized:
            return False, NOT_LOGGED_IN, "You have not login."
        if cmd["nargs"] is not None and len(args) != cmd["nargs"]:
            return False, COMMAND_ARGS_ERROR, "Invalid number of arguments."
        method = getattr(self, "do_" + verb)
        return method(args)

    # -----------------------------------------------------------------------
    # Commands that do not require an authorized session.

    def do_help(self, args):
        """Return help text to the client."""
        if len(args) > 1:
            return False, COMMAND_ARGS_ERROR, "Invalid number of arguments."
        if args:
            verb = args[0].lower()
            if verb in self.config.COMMANDS:
                return True, COMMAND_RUN_SUCCESS, self.config.COMMANDS[verb]["help"]
            return False, COMMAND_ARGS_ERROR, "Unrecognized command."
        return (
            True,
            COMMAND_RUN_SUCCESS,
            "The following commands are recognized: {}".format(
                ", ".join(self.config.COMMANDS.keys())
            ),
        )

    def do_login(self, args):
        if self.authorized:
            return (
                False,
                COMMAND_RUN_FAIL,
                "You have already login, username: {}".format(
                    self.authorization.identity
                ),
            )
        return True, NEED_USERNAME, "Need username."

    def do_username(self, args):
        """Set the identity the next password is checked against."""
        self.username = args[0]
        return True, NEED_PASSWORD, "Need password."

    def do_password(self, args):
        if not self.username:
            return False, NEED_USERNAME, "Need username."
        role = self.config.check_credentials(self.username, args[0])
        if role is None:
            self.invalid_login_attempt += 1
            logger.info(
                "Failed login for {} from {} ({} failed attempts)".format(
                    self.username, self.client_address, self.invalid_login_attempt
                )
            )
            return False, NOT_LOGGED_IN, "Username or password error! Please retry"
        self.authorization = Authorization(role, self.username)
        if self.session:
            self.session.identity = self.username
        logger.info(
            "Client {} logged in as {} ({})".format(
                self.client_address, self.username, role.value
            )
        )
        return True, COMMAND_RUN_SUCCESS, "Welcome! {}".format(self.username)

    # -----------------------------------------------------------------------
    # Next up we have commands that require an authorized session but no data channel.

    def do_passive(self, args):
        """
        Open a passive listener and tell the client where to connect. The accept happens in the background while the
        client goes on with its next command.
        """
        # only the latest endpoint may stay pending
        self.close_data_channel()
        advertised_ip = self.config.advertised_ip()
        if not advertised_ip:
            return False, CANNOT_OPEN_DATA_CONNECTION, "Cannot get local IP."
        try:
            endpoint = PassiveEndpoint.open(
                advertised_ip,
                self.config.port_min,
                self.config.port_max,
                bind_host=self.config.bind_host,
            )
        except FTPDataConnectionError as err:
            logger.info("Can't switch to passive mode: {}".format(err))
            return False, CANNOT_OPEN_DATA_CONNECTION, "Cannot open data connection."
        try:
            address = endpoint.address
        except ValueError as err:
            endpoint.close()
            logger.warning("Can't advertise {}: {}".format(advertised_ip, err))
            return False, CANNOT_OPEN_DATA_CONNECTION, "Cannot get local IP."
        endpoint.start()
        self._pasv = endpoint
        logger.info(
            "Client {} entering passive mode, advertising {}:{}".format(
                self.client_address, advertised_ip, endpoint.port
            )
        )
        return (
            True,
            ENTERING_PASSIVE_MODE,
            "Entering Passive Mode {}".format(address),
        )

    def do_cwd(self, args):
        """Change the current working directory."""
        path = args[0]
        try:
            _path = self.ftp_path(path)
            if not self.config.fs.exists(_path):
                return False, PATH_INVALID, "Directory does not exist."
            if not self.config.fs.isdir(_path):
                return False, PATH_INVALID, "Path is not a directory."
        except SandboxViolation:
            return False, PATH_INVALID, ACCESS_DENIED
        except fs.errors.FSError as err:
            self._log_err(err)
            return False, PATH_INVALID, "Error accessing path."
        init_cwd = self.working_dir
        self.working_dir = to_virtual_path(self.user_root, _path)
        logger.info(
            "Changing current directory {} to {}".format(init_cwd, self.working_dir)
        )
        return (
            True,
            FILE_COMMAND_RUN_SUCCESS,
            "Directory changed successfully to {}".format(self.working_dir),
        )

    def do_pwd(self, args):
        """Return the name of the current working directory to the client."""
        return True, FILE_COMMAND_RUN_SUCCESS, "You are now in {}".format(self.working_dir)

    # -----------------------------------------------------------------------
    # Data channel related commands. Each one consumes the pending passive endpoint and closes it when done,
    # whatever the outcome.

    def do_list(self, args):
        """
        List one page of a directory. args: path, limit, page.
        Entries come in the order the file system enumerates them and are numbered from 1.
        """
        path = args[0]
        try:
            limit = int(args[1])
            if limit <= 0:
                raise ValueError
        except ValueError:
            return False, COMMAND_ARGS_ERROR, "Invalid argument <limit>."
        try:
            page = int(args[2])
            if page < 0:
                raise ValueError
        except ValueError:
            return False, COMMAND_ARGS_ERROR, "Invalid argument <page>."

        try:
            data_sock = self._open_data_channel()
        except FTPDataConnectionError as err:
            self._log_err(err)
            self.close_data_channel()
            return False, CANNOT_OPEN_DATA_CONNECTION, "Data connection is not established."
        try:
            try:
                _path = self.ftp_path(path)
                listing = self.config.fs.listdir(_path)
            except SandboxViolation:
                return False, PATH_INVALID, ACCESS_DENIED
            except fs.errors.FSError as err:
                self._log_err(err)
                return False, PATH_INVALID, "Cannot open {}".format(path)

            start = page * limit
            if start >= len(listing):
                return True, FILE_COMMAND_RUN_SUCCESS, "No files on this page."
            end = min(start + limit, len(listing))
            _list_data = "".join(
                "{}. {}\n".format(start + i + 1, name)
                for i, name in enumerate(listing[start:end])
            ).encode("utf-8")

            self.respond(DATA_CONNECTION_OPEN, "Here comes the directory listing.")
            try:
                data_sock.sendall(_list_data)
            except socket.error as err:
                self._log_err(err)
                return False, TRANSFER_ABORTED, "Failed to send directory listing."
            self.metrics.data_channel_bytes_send += len(_list_data)
            return True, CLOSING_DATA_CONNECTION, "Directory send OK."
        finally:
            self.close_data_channel()

    def do_stor(self, args):
        """Store a file (transfer from the client to the server). An existing file is truncated."""
        try:
            data_sock = self._open_data_channel()
        except FTPDataConnectionError as err:
            self._log_err(err)
            self.close_data_channel()
            return False, CANNOT_OPEN_DATA_CONNECTION, "Data connection is not established."
        try:
            try:
                _path = self.ftp_path(args[0])
                _file = self.config.fs.openbin(_path, mode="w")
            except SandboxViolation:
                return False, PATH_INVALID, ACCESS_DENIED
            except (fs.errors.FSError, OSError) as err:
                self._log_err(err)
                return False, PATH_INVALID, "Cannot create file."

            bytes_before = self.metrics.data_channel_bytes_recv
            with _file:
                self.respond(DATA_CONNECTION_OPEN, "Ok to send data.")
                try:
                    with data_sock.makefile("rb") as source:
                        received = copy_files(
                            source,
                            _file,
                            buffer_size=self._ac_in_buffer_size,
                            callback=self._count_recv,
                        )
                except (socket.error, OSError, fs.errors.FSError) as err:
                    # whatever was written so far stays on disk
                    logger.info(
                        "{} bytes received from {} before the transfer failed: {}".format(
                            self.metrics.data_channel_bytes_recv - bytes_before,
                            self.client_address,
                            err,
                        )
                    )
                    return False, TRANSFER_ABORTED, "Failed to write to file."
            logger.info("{} bytes received".format(received))
            return (
                True,
                CLOSING_DATA_CONNECTION,
                "File received ok, {} bytes.".format(received),
            )
        finally:
            self.close_data_channel()

    def do_retr(self, args):
        """
        Fetch and send a file.
        :param args: [file name that is to be retrieved]
        """
        try:
            data_sock = self._open_data_channel()
        except FTPDataConnectionError as err:
            self._log_err(err)
            self.close_data_channel()
            return False, CANNOT_OPEN_DATA_CONNECTION, "Data connection is not established."
        try:
            try:
                _path = self.ftp_path(args[0])
                _file = self.config.fs.openbin(_path, mode="r")
            except SandboxViolation:
                return False, PATH_INVALID, ACCESS_DENIED
            except fs.errors.ResourceNotFound:
                return False, COMMAND_RUN_FAIL, "File does not exist."
            except fs.errors.FileExpected:
                return False, PATH_INVALID, "Path is not a file."
            except (fs.errors.FSError, OSError) as err:
                self._log_err(err)
                return False, PATH_INVALID, "Cannot open file."

            bytes_before = self.metrics.data_channel_bytes_send
            with _file:
                self.respond(DATA_CONNECTION_OPEN, "Ok to send data.")
                try:
                    with data_sock.makefile("wb") as dest:
                        sent = copy_files(
                            _file,
                            dest,
                            buffer_size=self._ac_out_buffer_size,
                            callback=self._count_send,
                        )
                except (socket.error, OSError, fs.errors.FSError) as err:
                    logger.info(
                        "{} bytes sent to {} before the transfer failed: {}".format(
                            self.metrics.data_channel_bytes_send - bytes_before,
                            self.client_address,
                            err,
                        )
                    )
                    return False, TRANSFER_ABORTED, "Failed to read from file."
            logger.info("{} bytes sent".format(sent))
            return True, CLOSING_DATA_CONNECTION, "File sent ok, {} bytes.".format(sent)
        finally:
            self.close_data_channel()

    # -----------------------------------------------------------------
    # Helper methods

    @property
    def user_root(self):
        role, identity = self.authorization
        return user_root(role, self.config.root_path, identity)

    def ftp_path(self, path):
        """
        Clean and sanitize a client path into an absolute path inside the user's root. A user's root directory is
        created the first time it is needed.
        """
        role, identity = self.authorization
        if role is Role.USER:
            self.config.fs.makedirs(self.user_root)
        return resolve_path(
            role, self.config.root_path, identity, self.working_dir, path
        )

    def _open_data_channel(self):
        """Block until the pending passive endpoint delivers its connection."""
        if self._pasv is None:
            raise FTPDataConnectionError("no pending passive endpoint, use passive first")
        return self._pasv.wait(timeout=self.config.data_timeout)

    def close_data_channel(self):
        if self._pasv is not None:
            self._pasv.close()
            self._pasv = None

    def _count_recv(self, n):
        self.metrics.data_channel_bytes_recv += n

    def _count_send(self, n):
        self.metrics.data_channel_bytes_send += n

    def _log_err(self, err):
        """
        Log errors that are only reported to the client as a reply code.
        :param err: Exception object
        """
        logger.info(
            "FTP error occurred. Client: {} error {}".format(self.client_address, str(err))
        )
