"""
SYSVOL - Accesso SMB alle cartelle dei criteri di gruppo
"""

import os
from io import BytesIO
from typing import Iterator, Optional, Tuple

from impacket.smbconnection import SMBConnection, SessionError

from .ad_utils import split_credentials


SHARE = "SYSVOL"

# STATUS_OBJECT_NAME_COLLISION
STATUS_OBJECT_NAME_COLLISION = 0xC0000035


def share_relative_path(unc_path: str) -> str:
    """
    Converte il percorso UNC di gPCFileSysPath in percorso relativo
    alla share SYSVOL.

    \\\\corp.local\\SysVol\\corp.local\\Policies\\{GUID}
        -> \\corp.local\\Policies\\{GUID}
    """
    path = unc_path.replace("/", "\\")
    lowered = path.lower()
    marker = "\\sysvol"
    index = lowered.find(marker)
    if index < 0:
        raise ValueError(f"Percorso SYSVOL non valido: {unc_path}")
    relative = path[index + len(marker):]
    return relative if relative.startswith("\\") else "\\" + relative


class SysvolClient:
    """
    Legge e scrive file nella share SYSVOL di un Domain Controller.
    """

    def __init__(
        self,
        server: str,
        username: str,
        password: str,
        domain: Optional[str] = None,
        timeout: int = 30
    ):
        self.server = server
        self.user, self.domain = split_credentials(username, domain or "")
        self.password = password
        self.timeout = timeout
        self._conn: Optional[SMBConnection] = None

    def connect(self):
        """Apre la sessione SMB"""
        self._conn = SMBConnection(self.server, self.server, timeout=self.timeout)
        self._conn.login(self.user, self.password, self.domain)

    def disconnect(self):
        if self._conn:
            try:
                self._conn.logoff()
            finally:
                self._conn = None

    def _require_connection(self) -> SMBConnection:
        if not self._conn:
            raise ConnectionError("Sessione SMB verso SYSVOL non aperta")
        return self._conn

    def share_path(self, unc_path: str) -> str:
        return share_relative_path(unc_path)

    def walk(self, path: str) -> Iterator[Tuple[str, bool]]:
        """Elenca ricorsivamente (percorso relativo, is_dir) sotto path"""
        conn = self._require_connection()
        pending = [""]
        while pending:
            relative = pending.pop()
            current = path + relative
            for item in conn.listPath(SHARE, current + "\\*"):
                name = item.get_longname()
                if name in (".", ".."):
                    continue
                child = f"{relative}\\{name}"
                if item.is_directory():
                    pending.append(child)
                    yield child.lstrip("\\"), True
                else:
                    yield child.lstrip("\\"), False

    def read_file(self, path: str) -> bytes:
        conn = self._require_connection()
        buffer = BytesIO()
        conn.getFile(SHARE, path, buffer.write)
        return buffer.getvalue()

    def write_file(self, path: str, data: bytes):
        conn = self._require_connection()
        conn.putFile(SHARE, path, BytesIO(data).read)

    def ensure_directory(self, path: str):
        """Crea la cartella e i padri mancanti"""
        conn = self._require_connection()
        current = ""
        for part in [p for p in path.split("\\") if p]:
            current += "\\" + part
            try:
                conn.createDirectory(SHARE, current)
            except SessionError as e:
                if e.getErrorCode() != STATUS_OBJECT_NAME_COLLISION:
                    raise

    def download_tree(self, path: str, local_dir: str) -> int:
        """Copia ricorsivamente path in local_dir, restituisce i file copiati"""
        os.makedirs(local_dir, exist_ok=True)
        count = 0
        for relative, is_dir in self.walk(path):
            local_path = os.path.join(local_dir, *relative.split("\\"))
            if is_dir:
                os.makedirs(local_path, exist_ok=True)
                continue
            os.makedirs(os.path.dirname(local_path), exist_ok=True)
            with open(local_path, "wb") as f:
                f.write(self.read_file(f"{path}\\{relative}"))
            count += 1
        return count

    def upload_tree(self, local_dir: str, path: str) -> int:
        """Copia local_dir in path sovrascrivendo i file esistenti"""
        self.ensure_directory(path)
        count = 0
        for root, dirs, files in os.walk(local_dir):
            relative = os.path.relpath(root, local_dir)
            remote_dir = path if relative == "." else path + "\\" + relative.replace(os.sep, "\\")
            for name in sorted(dirs):
                self.ensure_directory(f"{remote_dir}\\{name}")
            for name in sorted(files):
                with open(os.path.join(root, name), "rb") as f:
                    self.write_file(f"{remote_dir}\\{name}", f.read())
                count += 1
        return count
