"""
Directory Mirror - Dump di OU, utenti e gruppi e replica verso un altro dominio
"""

import json
import secrets
import string
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Any, Optional

from .ad_connector import ADOperationError
from .ad_utils import (
    as_list, decode_group_type, dn_depth, dn_to_domain, encode_group_type,
    first_value, is_under, rebase_dn, rdn_value
)


OU_ATTRIBUTES = ["name", "description", "isCriticalSystemObject"]

GROUP_ATTRIBUTES = [
    "sAMAccountName",
    "cn",
    "description",
    "groupType",
    "mail",
    "member",
    "isCriticalSystemObject",
]

USER_ATTRIBUTES = [
    "sAMAccountName",
    "userPrincipalName",
    "cn",
    "givenName",
    "sn",
    "displayName",
    "mail",
    "description",
    "title",
    "department",
    "company",
    "telephoneNumber",
    "userAccountControl",
    "isCriticalSystemObject",
]

# Attributi utente copiati così come sono nel dominio di destinazione
COPIED_USER_ATTRIBUTES = [
    "givenName",
    "sn",
    "displayName",
    "mail",
    "description",
    "title",
    "department",
    "company",
    "telephoneNumber",
]

USER_OBJECT_CLASS = ["top", "person", "organizationalPerson", "user"]
GROUP_OBJECT_CLASS = ["top", "group"]
OU_OBJECT_CLASS = ["top", "organizationalUnit"]

# NORMAL_ACCOUNT + ACCOUNTDISABLE
DISABLED_USER_UAC = 514


@dataclass
class DirectorySnapshot:
    """Istantanea di OU, gruppi e utenti di un dominio"""
    domain: str
    base_dn: str
    taken_at: str
    ous: List[Dict[str, Any]] = field(default_factory=list)
    groups: List[Dict[str, Any]] = field(default_factory=list)
    users: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DirectorySnapshot":
        missing = [k for k in ("domain", "base_dn") if k not in data]
        if missing:
            raise ValueError(f"Dump non valido, campi mancanti: {', '.join(missing)}")
        return cls(
            domain=data["domain"],
            base_dn=data["base_dn"],
            taken_at=data.get("taken_at", ""),
            ous=list(data.get("ous", [])),
            groups=list(data.get("groups", [])),
            users=list(data.get("users", [])),
        )

    def save(self, path: str) -> str:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        return path

    @classmethod
    def load(cls, path: str) -> "DirectorySnapshot":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))


def _clean(value: Any) -> Any:
    """Valori LDAP in forma serializzabile JSON"""
    if isinstance(value, list) and len(value) <= 1:
        value = value[0] if value else None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.hex()
    return value


class DirectoryDumper:
    """
    Esporta OU, gruppi e utenti di un dominio in un DirectorySnapshot.
    """

    def __init__(self, connector, search_base: Optional[str] = None):
        self.connector = connector
        self.search_base = search_base or connector.base_dn

    def dump(self) -> DirectorySnapshot:
        snapshot = DirectorySnapshot(
            domain=dn_to_domain(self.connector.base_dn),
            base_dn=self.connector.base_dn,
            taken_at=datetime.now().isoformat(),
        )

        for entry in self.connector.search(
            "(objectClass=organizationalUnit)", OU_ATTRIBUTES,
            search_base=self.search_base
        ):
            attrs = entry.get("attributes", {})
            snapshot.ous.append({
                "dn": entry["dn"],
                "name": first_value(attrs.get("name")) or rdn_value(entry["dn"]),
                "description": _clean(attrs.get("description")) or "",
                "system": bool(first_value(attrs.get("isCriticalSystemObject"))),
            })

        for entry in self.connector.search(
            "(objectClass=group)", GROUP_ATTRIBUTES,
            search_base=self.search_base
        ):
            attrs = entry.get("attributes", {})
            group_type = decode_group_type(first_value(attrs.get("groupType")))
            snapshot.groups.append({
                "dn": entry["dn"],
                "sAMAccountName": first_value(attrs.get("sAMAccountName")) or "",
                "description": _clean(attrs.get("description")) or "",
                "mail": first_value(attrs.get("mail")) or "",
                "scope": group_type["scope"],
                "category": group_type["category"],
                "members": sorted(as_list(attrs.get("member"))),
                "system": bool(first_value(attrs.get("isCriticalSystemObject"))),
            })

        for entry in self.connector.search(
            "(&(objectCategory=person)(objectClass=user))", USER_ATTRIBUTES,
            search_base=self.search_base
        ):
            attrs = entry.get("attributes", {})
            user = {
                "dn": entry["dn"],
                "sAMAccountName": first_value(attrs.get("sAMAccountName")) or "",
                "userPrincipalName": first_value(attrs.get("userPrincipalName")) or "",
                "userAccountControl": int(first_value(attrs.get("userAccountControl")) or 0),
                "system": bool(first_value(attrs.get("isCriticalSystemObject"))),
            }
            for name in COPIED_USER_ATTRIBUTES:
                value = _clean(attrs.get(name))
                if value:
                    user[name] = value
            snapshot.users.append(user)

        return snapshot


@dataclass
class MirrorAction:
    """Singola azione eseguita (o pianificata) durante il mirror"""
    kind: str            # ou, group, user, membership
    dn: str
    status: str          # created, exists, skipped, planned, failed
    message: str = ""


def generate_password(length: int = 24) -> str:
    """Password casuale che soddisfa la complessità AD"""
    alphabet = string.ascii_letters + string.digits + "!#%+-_=?"
    while True:
        password = "".join(secrets.choice(alphabet) for _ in range(length))
        if (any(c.islower() for c in password)
                and any(c.isupper() for c in password)
                and any(c.isdigit() for c in password)
                and any(c in "!#%+-_=?" for c in password)):
            return password


class DirectoryMirror:
    """
    Replica un DirectorySnapshot nel dominio di destinazione.

    Le OU vengono create partendo dai padri, poi gruppi, utenti
    (disabilitati) e infine le appartenenze ai gruppi.
    """

    def __init__(
        self,
        target,
        dry_run: bool = False,
        include_system: bool = False,
        set_random_password: Optional[bool] = None
    ):
        """
        Args:
            target: ADConnector connesso al dominio di destinazione
            dry_run: Non scrive nulla, riporta solo le azioni pianificate
            include_system: Tenta anche gli oggetti di sistema (Domain Admins, ...)
            set_random_password: Imposta una password casuale sugli utenti
                creati (default: solo su connessione LDAPS)
        """
        self.target = target
        self.dry_run = dry_run
        self.include_system = include_system
        if set_random_password is None:
            set_random_password = bool(getattr(target, "use_ssl", False))
        self.set_random_password = set_random_password
        self.actions: List[MirrorAction] = []
        self._planned: set = set()

    def _record(self, kind: str, dn: str, status: str, message: str = "") -> MirrorAction:
        action = MirrorAction(kind=kind, dn=dn, status=status, message=message)
        self.actions.append(action)
        return action

    def _map_dn(self, dn: str, snapshot: DirectorySnapshot) -> str:
        return rebase_dn(dn, snapshot.base_dn, self.target.base_dn)

    def _exists(self, dn: str) -> bool:
        return dn.lower() in self._planned or self.target.exists(dn)

    def _create(self, kind: str, dn: str, object_class: list, attributes: Dict[str, Any],
                message: str = "") -> MirrorAction:
        if self._exists(dn):
            return self._record(kind, dn, "exists")
        if self.dry_run:
            self._planned.add(dn.lower())
            return self._record(kind, dn, "planned", message)
        try:
            self.target.add(dn, object_class, attributes)
        except ADOperationError as e:
            return self._record(kind, dn, "failed", e.description)
        return self._record(kind, dn, "created", message)

    def mirror(
        self,
        snapshot: DirectorySnapshot,
        ou_filter: Optional[str] = None
    ) -> List[MirrorAction]:
        """
        Replica il contenuto dello snapshot.

        Args:
            snapshot: Dump del dominio sorgente
            ou_filter: DN sorgente: replica solo il sottoalbero indicato

        Returns:
            Lista di MirrorAction
        """
        self.actions = []
        self._planned = set()

        def selected(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            if not ou_filter:
                return records
            return [r for r in records if is_under(r["dn"], ou_filter)]

        ous = sorted(selected(snapshot.ous), key=lambda o: dn_depth(o["dn"]))
        groups = selected(snapshot.groups)
        users = selected(snapshot.users)

        # 1. OU, padri prima dei figli
        for ou in ous:
            target_dn = self._map_dn(ou["dn"], snapshot)
            if ou.get("system") and not self.include_system:
                self._record("ou", target_dn, "skipped", "oggetto di sistema")
                continue
            attributes = {}
            if ou.get("description"):
                attributes["description"] = ou["description"]
            self._create("ou", target_dn, OU_OBJECT_CLASS, attributes)

        # 2. Gruppi
        for group in groups:
            target_dn = self._map_dn(group["dn"], snapshot)
            if group.get("system") and not self.include_system:
                self._record("group", target_dn, "skipped", "oggetto di sistema")
                continue
            attributes = {
                "sAMAccountName": group["sAMAccountName"],
                "groupType": encode_group_type(
                    group.get("scope", "Global"), group.get("category", "Security")
                ),
            }
            for name in ("description", "mail"):
                if group.get(name):
                    attributes[name] = group[name]
            self._create("group", target_dn, GROUP_OBJECT_CLASS, attributes)

        # 3. Utenti, sempre disabilitati
        target_domain = dn_to_domain(self.target.base_dn)
        for user in users:
            target_dn = self._map_dn(user["dn"], snapshot)
            if user.get("system") and not self.include_system:
                self._record("user", target_dn, "skipped", "oggetto di sistema")
                continue
            attributes = {
                "sAMAccountName": user["sAMAccountName"],
                "userPrincipalName": self._map_upn(user, target_domain),
            }
            for name in COPIED_USER_ATTRIBUTES:
                if user.get(name):
                    attributes[name] = user[name]
            message = "creato disabilitato"
            if self.set_random_password:
                password = generate_password()
                attributes["unicodePwd"] = f'"{password}"'.encode("utf-16-le")
                attributes["userAccountControl"] = DISABLED_USER_UAC
                message = "creato disabilitato con password casuale"
            else:
                # Senza password AD crea l'account disabilitato con PASSWD_NOTREQD
                message = "creato disabilitato senza password (richiede LDAPS per impostarla)"
            self._create("user", target_dn, USER_OBJECT_CLASS, attributes, message)

        # 4. Appartenenze
        for group in groups:
            if group.get("system") and not self.include_system:
                continue
            self._mirror_membership(group, snapshot)

        return self.actions

    def _map_upn(self, user: Dict[str, Any], target_domain: str) -> str:
        upn = user.get("userPrincipalName") or ""
        prefix = upn.split("@", 1)[0] if upn else user["sAMAccountName"]
        return f"{prefix}@{target_domain}"

    def _mirror_membership(self, group: Dict[str, Any], snapshot: DirectorySnapshot):
        group_dn = self._map_dn(group["dn"], snapshot)
        current = set()
        if group_dn.lower() not in self._planned:
            entry = self.target.get_object(group_dn, ["member"])
            if entry is None:
                self._record("membership", group_dn, "failed", "gruppo assente nella destinazione")
                return
            current = {m.lower() for m in as_list(entry["attributes"].get("member"))}

        for member in group.get("members", []):
            if not is_under(member, snapshot.base_dn):
                self._record(
                    "membership", f"{group_dn} <- {member}", "skipped",
                    "membro esterno al dominio sorgente"
                )
                continue
            member_dn = self._map_dn(member, snapshot)
            label = f"{group_dn} <- {member_dn}"
            if member_dn.lower() in current:
                self._record("membership", label, "exists")
                continue
            if not self._exists(member_dn):
                self._record("membership", label, "skipped", "membro assente nella destinazione")
                continue
            if self.dry_run:
                self._record("membership", label, "planned")
                continue
            try:
                self.target.add_group_member(group_dn, member_dn)
            except ADOperationError as e:
                self._record("membership", label, "failed", e.description)
                continue
            self._record("membership", label, "created")

    def get_summary(self) -> Dict[str, Dict[str, int]]:
        summary: Dict[str, Dict[str, int]] = {}
        for action in self.actions:
            by_status = summary.setdefault(action.kind, {})
            by_status[action.status] = by_status.get(action.status, 0) + 1
        return summary
