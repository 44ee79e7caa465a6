"""
Privileged Groups - Audit dell'appartenenza ai gruppi ad alto privilegio
"""

from datetime import datetime
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field

from ldap3.utils.conv import escape_filter_chars

from .ad_utils import filetime_to_datetime, first_value, as_list, parse_uac
from .stale_accounts import Risk, get_last_logon


# Gruppi di dominio identificati per RID
DOMAIN_GROUP_RIDS = {
    512: "Domain Admins",
    518: "Schema Admins",
    519: "Enterprise Admins",
    520: "Group Policy Creator Owners",
}

# Gruppi builtin identificati per SID
BUILTIN_GROUP_SIDS = {
    "S-1-5-32-544": "Administrators",
    "S-1-5-32-548": "Account Operators",
    "S-1-5-32-549": "Server Operators",
    "S-1-5-32-550": "Print Operators",
    "S-1-5-32-551": "Backup Operators",
}

# Gruppi senza SID fisso
NAMED_GROUPS = ["DnsAdmins", "Key Admins", "Enterprise Key Admins"]

MEMBER_ATTRIBUTES = [
    "objectClass",
    "sAMAccountName",
    "displayName",
    "userAccountControl",
    "lastLogon",
    "lastLogonTimestamp",
    "pwdLastSet",
    "adminCount",
    "member",
]


@dataclass
class PrivilegedMember:
    """Account con privilegi (diretti o tramite gruppi annidati)"""
    dn: str
    username: str
    object_class: str
    enabled: bool = True
    last_logon: Optional[datetime] = None
    password_last_set: Optional[datetime] = None
    password_never_expires: bool = False
    admin_count: bool = False
    groups: List[str] = field(default_factory=list)
    paths: List[List[str]] = field(default_factory=list)


@dataclass
class PrivilegeFinding:
    """Problema rilevato sui membri privilegiati"""
    subject: str
    dn: str
    issue_type: str
    risk_level: Risk
    description: str
    recommendation: str


@dataclass
class PrivilegedGroup:
    name: str
    dn: str
    sid: str = ""
    members: List[PrivilegedMember] = field(default_factory=list)


class PrivilegedGroupAuditor:
    """
    Espande ricorsivamente i gruppi privilegiati del dominio e segnala
    configurazioni rischiose dei loro membri.
    """

    STALE_DAYS = 45              # Admin senza login da X giorni
    MAX_MEMBERS = 5              # Oltre X membri diretti+annidati è warning

    def __init__(
        self,
        connector,
        extra_groups: Optional[List[str]] = None,
        stale_days: int = STALE_DAYS,
        max_members: int = MAX_MEMBERS,
        now: Optional[datetime] = None
    ):
        self.connector = connector
        self.extra_groups = extra_groups or []
        self.stale_days = stale_days
        self.max_members = max_members
        self.now = now
        self.groups: List[PrivilegedGroup] = []
        self.findings: List[PrivilegeFinding] = []

    def _find_group(self, search_filter: str) -> Optional[Dict[str, Any]]:
        results = self.connector.search(
            search_filter, ["sAMAccountName", "objectSid", "member"]
        )
        return results[0] if results else None

    def resolve_groups(self) -> List[PrivilegedGroup]:
        """Individua i gruppi privilegiati presenti nel dominio"""
        groups = []
        seen = set()

        candidates = []
        domain_sid = self.connector.get_domain_sid()
        if domain_sid:
            for rid, name in DOMAIN_GROUP_RIDS.items():
                candidates.append((name, f"(objectSid={domain_sid}-{rid})"))
        for sid, name in BUILTIN_GROUP_SIDS.items():
            candidates.append((name, f"(objectSid={sid})"))
        for name in NAMED_GROUPS + self.extra_groups:
            candidates.append((
                name,
                f"(&(objectClass=group)(sAMAccountName={escape_filter_chars(name)}))"
            ))

        for name, search_filter in candidates:
            entry = self._find_group(search_filter)
            if not entry or entry["dn"].lower() in seen:
                continue
            seen.add(entry["dn"].lower())
            attrs = entry.get("attributes", {})
            groups.append(PrivilegedGroup(
                name=first_value(attrs.get("sAMAccountName")) or name,
                dn=entry["dn"],
                sid=str(first_value(attrs.get("objectSid")) or ""),
            ))

        return groups

    def expand_members(self, group_dn: str) -> List[PrivilegedMember]:
        """
        Espande i membri del gruppo seguendo i gruppi annidati.

        I cicli di annidamento vengono interrotti; ogni membro riporta
        i percorsi di gruppi tramite cui ottiene il privilegio.
        Per i gruppi di dominio sono inclusi anche gli account che li hanno
        come gruppo primario, assenti dall'attributo member.
        """
        members: Dict[str, PrivilegedMember] = {}
        root = self.connector.get_object(group_dn, ["sAMAccountName", "member"])
        if not root:
            return []
        root_name = first_value(root["attributes"].get("sAMAccountName")) or group_dn

        stack = [(group_dn, [root_name], {group_dn.lower()})]
        while stack:
            current_dn, path, visited = stack.pop()
            entry = self.connector.get_object(current_dn, ["member", "objectSid"])
            if not entry:
                continue
            candidates = []
            for member_dn in as_list(entry["attributes"].get("member")):
                if member_dn.lower() in visited:
                    continue
                member = self.connector.get_object(member_dn, MEMBER_ATTRIBUTES)
                if member:
                    candidates.append(member)
            candidates.extend(self._primary_members(entry))

            for member in candidates:
                member_dn = member["dn"]
                attrs = member.get("attributes", {})
                classes = [c.lower() for c in as_list(attrs.get("objectClass"))]
                name = first_value(attrs.get("sAMAccountName")) or member_dn

                if "group" in classes:
                    stack.append((
                        member_dn,
                        path + [name],
                        visited | {member_dn.lower()}
                    ))
                    continue

                key = member_dn.lower()
                if key not in members:
                    members[key] = self._build_member(member_dn, attrs, classes)
                if path not in members[key].paths:
                    members[key].paths.append(list(path))

        return sorted(members.values(), key=lambda m: m.username.lower())

    def _primary_members(self, group_entry: Dict[str, Any]) -> List[Dict[str, Any]]:
        sid = str(first_value(group_entry["attributes"].get("objectSid")) or "")
        if not sid.startswith("S-1-5-21-"):
            return []
        rid = sid.rsplit("-", 1)[1]
        return self.connector.search(f"(primaryGroupID={rid})", MEMBER_ATTRIBUTES)

    def _build_member(self, dn: str, attrs: Dict, classes: List[str]) -> PrivilegedMember:
        uac_flags = parse_uac(first_value(attrs.get("userAccountControl")))
        if "computer" in classes:
            object_class = "computer"
        elif "foreignsecurityprincipal" in classes:
            object_class = "foreignSecurityPrincipal"
        elif "msds-groupmanagedserviceaccount" in classes:
            object_class = "gMSA"
        else:
            object_class = "user"
        return PrivilegedMember(
            dn=dn,
            username=first_value(attrs.get("sAMAccountName")) or dn,
            object_class=object_class,
            enabled=not uac_flags["ACCOUNTDISABLE"],
            last_logon=get_last_logon(attrs),
            password_last_set=filetime_to_datetime(attrs.get("pwdLastSet")),
            password_never_expires=uac_flags["DONT_EXPIRE_PASSWORD"],
            admin_count=str(first_value(attrs.get("adminCount")) or "0") == "1",
        )

    def audit(self) -> List[PrivilegeFinding]:
        """Esegue l'audit completo dei gruppi privilegiati"""
        now = self.now or datetime.now()
        self.groups = self.resolve_groups()
        self.findings = []
        reported = set()

        for group in self.groups:
            group.members = self.expand_members(group.dn)
            for member in group.members:
                member.groups.append(group.name)

            if len(group.members) > self.max_members:
                self.findings.append(PrivilegeFinding(
                    subject=group.name,
                    dn=group.dn,
                    issue_type="TOO_MANY_MEMBERS",
                    risk_level=Risk.WARNING,
                    description=f"Il gruppo ha {len(group.members)} membri effettivi.",
                    recommendation=(
                        "Ridurre i membri permanenti; usare l'accesso "
                        "temporaneo (JIT) per le attività occasionali."
                    ),
                ))

            for member in group.members:
                key = (member.dn.lower(), group.dn.lower())
                if key in reported:
                    continue
                reported.add(key)
                self._check_member(member, group, now)

        return self.findings

    def _check_member(self, member: PrivilegedMember, group: PrivilegedGroup, now: datetime):
        if member.object_class == "foreignSecurityPrincipal":
            self.findings.append(PrivilegeFinding(
                subject=member.username,
                dn=member.dn,
                issue_type="FOREIGN_MEMBER",
                risk_level=Risk.WARNING,
                description=f"Principal di un dominio esterno in {group.name}.",
                recommendation="Verificare la necessità del privilegio tramite trust.",
            ))
            return

        if not member.enabled:
            self.findings.append(PrivilegeFinding(
                subject=member.username,
                dn=member.dn,
                issue_type="DISABLED_MEMBER",
                risk_level=Risk.INFO,
                description=f"Account disabilitato ancora membro di {group.name}.",
                recommendation="Rimuovere l'account dal gruppo privilegiato.",
            ))
            return

        if member.password_never_expires:
            self.findings.append(PrivilegeFinding(
                subject=member.username,
                dn=member.dn,
                issue_type="PASSWORD_NEVER_EXPIRES",
                risk_level=Risk.CRITICAL,
                description=f"Membro di {group.name} con password che non scade mai.",
                recommendation="URGENTE: Rimuovere il flag 'Password never expires'.",
            ))

        if member.last_logon is None or (now - member.last_logon).days > self.stale_days:
            days = (now - member.last_logon).days if member.last_logon else None
            self.findings.append(PrivilegeFinding(
                subject=member.username,
                dn=member.dn,
                issue_type="STALE_PRIVILEGED_ACCOUNT",
                risk_level=Risk.CRITICAL,
                description=(
                    f"Membro di {group.name} non utilizzato da {days} giorni."
                    if days is not None else
                    f"Membro di {group.name} mai utilizzato."
                ),
                recommendation="Disabilitare l'account o rimuoverlo dal gruppo.",
            ))

        if not member.admin_count and member.object_class == "user":
            self.findings.append(PrivilegeFinding(
                subject=member.username,
                dn=member.dn,
                issue_type="ADMINCOUNT_NOT_SET",
                risk_level=Risk.INFO,
                description=(
                    f"Membro di {group.name} senza adminCount=1 "
                    "(aggiunto di recente o protezione SDProp non ancora applicata)."
                ),
                recommendation="Verificare quando e da chi è stato aggiunto.",
            ))

    def get_summary(self) -> Dict[str, Any]:
        unique_members = {
            m.dn.lower() for g in self.groups for m in g.members
        }
        return {
            "groups": {g.name: len(g.members) for g in self.groups},
            "privileged_accounts": len(unique_members),
            "critical_count": len([f for f in self.findings if f.risk_level == Risk.CRITICAL]),
            "warning_count": len([f for f in self.findings if f.risk_level == Risk.WARNING]),
            "info_count": len([f for f in self.findings if f.risk_level == Risk.INFO]),
        }
