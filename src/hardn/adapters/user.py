"""User accounts, authorized keys and sudo privileges."""

import posixpath
import re
from typing import List, Optional

import structlog

from hardn.adapters.sudoers import SUDOERS_DIR, install_sudoers_file
from hardn.exceptions import (
    CommandExecutionError,
    MutationError,
    NotFoundError,
    ProbeError,
)
from hardn.models import User
from hardn.ports import BackupHook, CommanderPort, FileSystemPort, UserLoginPort
from hardn.types import OSType

logger = structlog.get_logger(__name__)

NON_LOGIN_SHELL_SUFFIXES = ("/nologin", "/false", "/null")
EXCLUDED_USERS = {"nobody", "nfsnobody"}
USER_GROUPS = {
    "users",
    "staff",
    "wheel",
    "sudo",
    "admin",
    "adm",
    "netdev",
    "lpadmin",
    "sambashare",
    "docker",
    "plugdev",
    "libvirt",
}
DEFAULT_KEY_PATH_PATTERN = ".ssh_%u"


def default_home(username: str) -> str:
    return "/root" if username == "root" else f"/home/{username}"


def sudoers_line(username: str, no_password: bool) -> str:
    if no_password:
        return f"{username} ALL=(ALL) NOPASSWD: ALL\n"
    return f"{username} ALL=(ALL) ALL\n"


def resolve_key_path(pattern: str, username: str, home: str) -> str:
    """Expand an ``sshKeyPath`` pattern into an authorized_keys path.

    ``%u`` becomes the username; relative paths hang off the home
    directory; a directory gets ``.ssh/authorized_keys`` appended.
    """
    path = (pattern or DEFAULT_KEY_PATH_PATTERN).replace("%u", username)
    if not path.startswith("/"):
        path = posixpath.join(home, path)
    if not path.endswith("authorized_keys"):
        if ".ssh" not in path:
            path = posixpath.join(path, ".ssh")
        path = posixpath.join(path, "authorized_keys")
    return path


def append_authorized_key(
    fs: FileSystemPort,
    commander: CommanderPort,
    username: str,
    home: str,
    public_key: str,
    backup: Optional[BackupHook] = None,
) -> None:
    """Append a key to ``<home>/.ssh/authorized_keys`` unless already present.

    Raises:
        MutationError: If the directory, file or ownership cannot be set
    """
    ssh_dir = posixpath.join(home, ".ssh")
    auth_keys = posixpath.join(ssh_dir, "authorized_keys")
    key = public_key.strip()

    try:
        fs.mkdir_all(ssh_dir, 0o700)
    except OSError as e:
        raise MutationError(
            f"failed to create SSH directory for user {username}: {e}"
        ) from e

    if fs.exists(auth_keys):
        try:
            content = fs.read_text(auth_keys)
        except OSError as e:
            raise MutationError(f"failed to read authorized_keys file: {e}") from e
        if key in content:
            logger.debug("ssh_key_present", user=username)
            return
        if content and not content.endswith("\n"):
            content += "\n"
        content += key + "\n"
        if backup is not None:
            backup.backup_file(auth_keys)
    else:
        content = key + "\n"

    try:
        fs.write_file(auth_keys, content, 0o600)
    except OSError as e:
        raise MutationError(f"failed to write authorized_keys file: {e}") from e

    try:
        commander.execute(["chown", "-R", f"{username}:{username}", ssh_dir])
    except CommandExecutionError as e:
        raise MutationError(f"failed to set ownership on SSH directory: {e}") from e

    logger.info("ssh_key_added", user=username, path=auth_keys)


class OSUserAdapter:
    """User management through adduser/usermod and the passwd database."""

    def __init__(
        self,
        fs: FileSystemPort,
        commander: CommanderPort,
        os_type: OSType,
        login: Optional[UserLoginPort] = None,
        key_path_pattern: str = DEFAULT_KEY_PATH_PATTERN,
        backup: Optional[BackupHook] = None,
    ) -> None:
        self.fs = fs
        self.commander = commander
        self.os_type = os_type
        self.login = login
        self.key_path_pattern = key_path_pattern
        self.backup = backup

    @property
    def sudo_group(self) -> str:
        return "wheel" if self.os_type == OSType.ALPINE else "sudo"

    def user_exists(self, username: str) -> bool:
        """A failing ``id`` means the user is absent."""
        return self.commander.execute(["id", username], check=False).success

    def _home_dir(self, username: str) -> str:
        result = self.commander.execute(["getent", "passwd", username], check=False)
        parts = result.stdout.strip().split(":")
        if result.success and len(parts) >= 6 and parts[5]:
            return parts[5]
        return default_home(username)

    def create_user(self, user: User) -> None:
        """Create a user, or augment sudo and keys if it already exists.

        Raises:
            MutationError: If account creation, key install or sudoers write fails
        """
        username = user.username

        if self.user_exists(username):
            logger.info("user_exists", user=username)
            if user.has_sudo:
                self.configure_sudo(username, user.sudo_no_password)
            for key in user.ssh_keys:
                self.add_ssh_key(username, key)
            return

        if self.os_type == OSType.ALPINE:
            create = ["adduser", "-D", "-g", "", username]
            grant = ["addgroup", username, "wheel"]
        else:
            create = ["adduser", "--disabled-password", "--gecos", "", username]
            grant = ["usermod", "-aG", "sudo", username]

        try:
            self.commander.execute(create)
        except CommandExecutionError as e:
            raise MutationError(f"failed to create user {username}: {e}") from e

        if user.has_sudo:
            try:
                self.commander.execute(grant)
            except CommandExecutionError as e:
                raise MutationError(
                    f"failed to add user {username} to {self.sudo_group} group: {e}"
                ) from e

        logger.info("user_created", user=username, sudo=user.has_sudo)

        for key in user.ssh_keys:
            self.add_ssh_key(username, key)

        if user.has_sudo:
            self._write_sudoers(username, user.sudo_no_password)

    def add_ssh_key(self, username: str, public_key: str) -> None:
        append_authorized_key(
            self.fs,
            self.commander,
            username,
            self._home_dir(username),
            public_key,
            self.backup,
        )

    def configure_sudo(self, username: str, no_password: bool) -> None:
        """Grant sudo to an existing user.

        Raises:
            NotFoundError: If the user does not exist
        """
        if not self.user_exists(username):
            raise NotFoundError(f"user {username} does not exist")

        if self.os_type == OSType.ALPINE:
            grant = ["addgroup", username, "wheel"]
        else:
            grant = ["usermod", "-aG", "sudo", username]
        try:
            self.commander.execute(grant)
        except CommandExecutionError as e:
            raise MutationError(
                f"failed to add user {username} to {self.sudo_group} group: {e}"
            ) from e

        self._write_sudoers(username, no_password)

    def _write_sudoers(self, username: str, no_password: bool) -> None:
        try:
            self.fs.mkdir_all(SUDOERS_DIR, 0o755)
        except OSError as e:
            raise MutationError(f"failed to create sudoers directory: {e}") from e

        install_sudoers_file(
            self.fs,
            self.commander,
            posixpath.join(SUDOERS_DIR, username),
            sudoers_line(username, no_password),
            self.backup,
        )
        logger.info("sudoers_written", user=username, nopasswd=no_password)

    def _read_database(self, path: str) -> str:
        try:
            return self.fs.read_text(path)
        except OSError as e:
            result = self.commander.execute(["cat", path], check=False)
            if not result.success:
                raise ProbeError(f"failed to read {path}: {e}") from e
            return result.stdout

    def _has_sudo(self, username: str) -> bool:
        """sudo/wheel membership, a drop-in, or a mention in /etc/sudoers."""
        try:
            groups = self._read_database("/etc/group")
        except ProbeError:
            groups = ""
        for line in groups.splitlines():
            if line.startswith("sudo:") or line.startswith("wheel:"):
                fields = line.split(":")
                if len(fields) >= 4 and username in fields[3].split(","):
                    return True

        if self.fs.exists(posixpath.join(SUDOERS_DIR, username)):
            return True

        pattern = re.compile(rf"(^|\W){re.escape(username)}(\W|$)", re.MULTILINE)
        try:
            return bool(pattern.search(self.fs.read_text("/etc/sudoers")))
        except OSError:
            result = self.commander.execute(
                ["grep", "-w", username, "/etc/sudoers"], check=False
            )
            return result.success and bool(result.stdout.strip())

    def _read_keys(self, path: str) -> List[str]:
        content = self.fs.read_text(path)
        return [line.strip() for line in content.splitlines() if line.strip()]

    def get_user(self, username: str) -> User:
        """Return the basic account description.

        Raises:
            NotFoundError: If the user does not exist
        """
        if not self.user_exists(username):
            raise NotFoundError(f"user {username} does not exist")

        home = self._home_dir(username)
        try:
            keys = self._read_keys(posixpath.join(home, ".ssh", "authorized_keys"))
        except OSError:
            keys = []
        return User(
            username=username,
            has_sudo=self._has_sudo(username),
            ssh_keys=keys,
            home_directory=home,
        )

    def get_extended_user_info(self, username: str) -> User:
        """Populate ids, home, last login, keys and sudo status.

        Raises:
            NotFoundError: If the user does not exist
        """
        user = self.get_user(username)

        uid = self.commander.execute(["id", "-u", username], check=False)
        gid = self.commander.execute(["id", "-g", username], check=False)
        if uid.success and uid.stdout.strip().isdigit():
            user.uid = int(uid.stdout.strip())
        if gid.success and gid.stdout.strip().isdigit():
            user.gid = int(gid.stdout.strip())

        if user.uid is None or user.gid is None:
            entry = self.commander.execute(["getent", "passwd", username], check=False)
            parts = entry.stdout.strip().split(":")
            if entry.success and len(parts) >= 4:
                if user.uid is None and parts[2].isdigit():
                    user.uid = int(parts[2])
                if user.gid is None and parts[3].isdigit():
                    user.gid = int(parts[3])

        if self.login is not None:
            try:
                login, ip = self.login.get_last_login(username)
                user.last_login, user.last_login_ip = login, ip
            except ProbeError as e:
                logger.debug("last_login_unavailable", user=username, error=str(e))

        groups = self.commander.execute(["groups", username], check=False)
        user.has_sudo = groups.success and self.sudo_group in groups.stdout.split()

        try:
            drop_in = self.fs.read_text(posixpath.join(SUDOERS_DIR, username))
            user.sudo_no_password = "NOPASSWD:" in drop_in
        except OSError:
            user.sudo_no_password = False

        key_path = resolve_key_path(
            self.key_path_pattern, username, user.home_directory
        )
        fallback = posixpath.join(user.home_directory, ".ssh", "authorized_keys")
        user.ssh_keys = []
        for path in (key_path, fallback):
            try:
                user.ssh_keys = self._read_keys(path)
                break
            except OSError:
                continue

        return user

    def get_non_system_users(self) -> List[User]:
        """Users with UID >= 1000 and an interactive shell."""
        users: List[User] = []
        for line in self._read_database("/etc/passwd").splitlines():
            fields = line.split(":")
            if len(fields) < 7 or not fields[2].isdigit():
                continue
            name, uid, shell = fields[0], int(fields[2]), fields[6]
            if uid < 1000 or name in EXCLUDED_USERS:
                continue
            if shell.endswith(NON_LOGIN_SHELL_SUFFIXES):
                continue
            users.append(
                User(
                    username=name,
                    uid=uid,
                    gid=int(fields[3]) if fields[3].isdigit() else None,
                    home_directory=fields[5],
                    has_sudo=self._has_sudo(name),
                )
            )
        return users

    def get_non_system_groups(self) -> List[str]:
        """Groups with GID >= 1000 that have members or are typical user groups."""
        groups: List[str] = []
        for line in self._read_database("/etc/group").splitlines():
            fields = line.split(":")
            if len(fields) < 4 or not fields[2].isdigit():
                continue
            if int(fields[2]) < 1000:
                continue
            if not fields[3] and fields[0] not in USER_GROUPS:
                continue
            groups.append(fields[0])
        return groups
