"""
ADKeeper - Strumenti di amministrazione Active Directory

Dump e mirror della directory, backup e ripristino GPO, audit di igiene,
confronto server DHCP e accesso privilegiato temporaneo (JIT).
"""

__version__ = "1.0.0"

from .ad_connector import ADConnector, ADOperationError
from .conflict_objects import ConflictFinder
from .dhcp_compare import DhcpComparer, load_dhcp_export
from .directory_mirror import DirectoryDumper, DirectoryMirror, DirectorySnapshot
from .gpo_backup import GpoBackupManager
from .jit_admin import JitAdmin
from .privileged_groups import PrivilegedGroupAuditor
from .stale_accounts import StaleAccountAuditor

__all__ = [
    "ADConnector",
    "ADOperationError",
    "ConflictFinder",
    "DhcpComparer",
    "load_dhcp_export",
    "DirectoryDumper",
    "DirectoryMirror",
    "DirectorySnapshot",
    "GpoBackupManager",
    "JitAdmin",
    "PrivilegedGroupAuditor",
    "StaleAccountAuditor",
]
