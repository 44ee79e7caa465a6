"""
Conflict Objects - Oggetti in conflitto di replica (CNF, LostAndFound, $DUPLICATE)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ldap3 import LEVEL
from ldap3.utils.dn import escape_rdn

from .ad_utils import first_value, parent_dn, split_dn


CNF_MARKER = "\nCNF:"
CNF_DN_MARKER = "\\0ACNF:"

CONFLICT_ATTRIBUTES = [
    "name",
    "objectClass",
    "objectGUID",
    "sAMAccountName",
    "whenCreated",
    "whenChanged",
    "lastKnownParent",
]


@dataclass
class ConflictObject:
    """Oggetto in conflitto rilevato"""
    dn: str
    conflict_type: str           # CNF, LOST_AND_FOUND, DUPLICATE_ACCOUNT
    object_class: str
    original_name: str
    conflict_guid: str = ""
    original_dn: str = ""
    original_exists: Optional[bool] = None
    when_created: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


def split_cnf_name(name: str) -> Dict[str, str]:
    """
    Separa nome originale e GUID da un RDN mangled.

    'Mario Rossi\\nCNF:0f1e...' -> {'name': 'Mario Rossi', 'guid': '0f1e...'}
    """
    for marker in (CNF_MARKER, CNF_DN_MARKER, "\\nCNF:"):
        if marker in name:
            original, guid = name.split(marker, 1)
            return {"name": original, "guid": guid}
    return {"name": name, "guid": ""}


class ConflictFinder:
    """
    Cerca gli oggetti creati dalla risoluzione dei conflitti di replica.
    """

    def __init__(self, connector):
        self.connector = connector
        self.conflicts: List[ConflictObject] = []

    def find(self) -> List[ConflictObject]:
        """Esegue tutte le ricerche e restituisce i conflitti trovati"""
        self.conflicts = []
        self.conflicts.extend(self.find_cnf_objects())
        self.conflicts.extend(self.find_lost_and_found())
        self.conflicts.extend(self.find_duplicate_accounts())
        return self.conflicts

    def _object_class(self, attrs: Dict[str, Any]) -> str:
        classes = attrs.get("objectClass") or []
        if isinstance(classes, str):
            return classes
        return classes[-1] if classes else "unknown"

    def find_cnf_objects(self) -> List[ConflictObject]:
        """Oggetti con RDN 'nome\\0ACNF:guid'"""
        results = []
        entries = self.connector.search(
            "(name=*\\0ACNF:*)", CONFLICT_ATTRIBUTES
        )
        for entry in entries:
            attrs = entry.get("attributes", {})
            name = first_value(attrs.get("name")) or split_dn(entry["dn"])[0].split("=", 1)[-1]
            parts = split_cnf_name(name)

            original_dn = ""
            original_exists = None
            if parts["name"]:
                rdn_type = split_dn(entry["dn"])[0].split("=", 1)[0]
                container = parent_dn(entry["dn"])
                original_dn = f"{rdn_type}={escape_rdn(parts['name'])},{container}"
                original_exists = self.connector.exists(original_dn)

            results.append(ConflictObject(
                dn=entry["dn"],
                conflict_type="CNF",
                object_class=self._object_class(attrs),
                original_name=parts["name"],
                conflict_guid=parts["guid"],
                original_dn=original_dn,
                original_exists=original_exists,
                when_created=str(first_value(attrs.get("whenCreated")) or ""),
            ))
        return results

    def find_lost_and_found(self) -> List[ConflictObject]:
        """Oggetti orfani spostati in CN=LostAndFound"""
        results = []
        base = f"CN=LostAndFound,{self.connector.base_dn}"
        entries = self.connector.search(
            "(objectClass=*)", CONFLICT_ATTRIBUTES,
            search_base=base, scope=LEVEL
        )
        for entry in entries:
            attrs = entry.get("attributes", {})
            name = first_value(attrs.get("name")) or ""
            parts = split_cnf_name(name)
            results.append(ConflictObject(
                dn=entry["dn"],
                conflict_type="LOST_AND_FOUND",
                object_class=self._object_class(attrs),
                original_name=parts["name"],
                conflict_guid=parts["guid"],
                when_created=str(first_value(attrs.get("whenCreated")) or ""),
                details={
                    "last_known_parent": first_value(attrs.get("lastKnownParent")) or ""
                },
            ))
        return results

    def find_duplicate_accounts(self) -> List[ConflictObject]:
        """Account rinominati in $DUPLICATE-xxxx per sAMAccountName duplicato"""
        results = []
        entries = self.connector.search(
            "(sAMAccountName=$DUPLICATE-*)", CONFLICT_ATTRIBUTES
        )
        for entry in entries:
            attrs = entry.get("attributes", {})
            results.append(ConflictObject(
                dn=entry["dn"],
                conflict_type="DUPLICATE_ACCOUNT",
                object_class=self._object_class(attrs),
                original_name=first_value(attrs.get("name")) or "",
                when_created=str(first_value(attrs.get("whenCreated")) or ""),
                details={
                    "sam_account_name": first_value(attrs.get("sAMAccountName")) or ""
                },
            ))
        return results

    def get_summary(self) -> Dict[str, Any]:
        by_type: Dict[str, int] = {}
        for conflict in self.conflicts:
            by_type[conflict.conflict_type] = by_type.get(conflict.conflict_type, 0) + 1
        return {
            "total_conflicts": len(self.conflicts),
            "cnf_objects": by_type.get("CNF", 0),
            "lost_and_found": by_type.get("LOST_AND_FOUND", 0),
            "duplicate_accounts": by_type.get("DUPLICATE_ACCOUNT", 0),
            "orphaned_cnf": len([
                c for c in self.conflicts
                if c.conflict_type == "CNF" and c.original_exists is False
            ]),
        }
