"""
JIT Admin - Appartenenza temporanea ai gruppi privilegiati

Il metodo predefinito usa gli oggetti dinamici di AD: per ogni concessione
viene creato un gruppo con entryTTL che contiene l'utente ed è annidato nel
gruppo privilegiato. Alla scadenza del TTL il DC elimina il gruppo e
l'appartenenza decade senza interventi.

Con la funzionalità Privileged Access Management attiva nella foresta è
disponibile anche il metodo "ttl", che aggiunge direttamente l'utente con
un valore member '<TTL=secondi,DN>'.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Any, Optional

from ldap3 import LEVEL
from ldap3.utils.dn import escape_rdn

from .ad_utils import as_list, encode_group_type, first_value, rdn_value


PAM_FEATURE_NAME = "Privileged Access Management Feature"
# LDAP_SERVER_LINK_TTL_OID: restituisce i valori member con il TTL residuo
LINK_TTL_CONTROL = ("1.2.840.113556.1.4.2309", True, None)

TTL_MEMBER_PATTERN = re.compile(r"^<TTL=(\d+)>,(.+)$|^<TTL=(\d+),(.+)>$", re.IGNORECASE)

METHOD_DYNAMIC = "dynamic"
METHOD_TTL = "ttl"


@dataclass
class JitGrant:
    """Concessione temporanea attiva"""
    user_dn: str
    group_dn: str
    method: str
    ttl_seconds: int
    expires_at: datetime
    grant_dn: str = ""           # gruppo dinamico (solo metodo dynamic)

    @property
    def remaining_minutes(self) -> int:
        return self.ttl_seconds // 60


class JitAdmin:
    """
    Gestisce le concessioni just-in-time su gruppi privilegiati.
    """

    # Limiti degli oggetti dinamici (DynamicObjectMinTTL / 1 anno)
    MIN_TTL = 900
    MAX_TTL = 31557600
    JIT_OU_NAME = "JIT"
    MAX_NAME = 64

    def __init__(self, connector, jit_ou_dn: Optional[str] = None, now: Optional[datetime] = None):
        """
        Args:
            connector: ADConnector connesso
            jit_ou_dn: OU che contiene i gruppi dinamici (default: OU=JIT,<base>)
            now: Istante di riferimento (default: adesso)
        """
        self.connector = connector
        self.jit_ou_dn = jit_ou_dn or f"OU={self.JIT_OU_NAME},{connector.base_dn}"
        self.now = now

    def _now(self) -> datetime:
        return self.now or datetime.now()

    def validate_minutes(self, minutes: int) -> int:
        """Converte e valida la durata, restituisce i secondi"""
        seconds = int(minutes) * 60
        if seconds < self.MIN_TTL:
            raise ValueError(
                f"Durata minima {self.MIN_TTL // 60} minuti (richiesti {minutes})"
            )
        if seconds > self.MAX_TTL:
            raise ValueError(
                f"Durata massima {self.MAX_TTL // 60} minuti (richiesti {minutes})"
            )
        return seconds

    def pam_enabled(self) -> bool:
        """Verifica se la funzionalità PAM è attiva nella foresta"""
        config_dn = getattr(self.connector, "configuration_dn", "")
        if not config_dn:
            return False
        entry = self.connector.get_object(
            f"CN=Partitions,{config_dn}", ["msDS-EnabledFeature"]
        )
        if not entry:
            return False
        features = as_list(entry["attributes"].get("msDS-EnabledFeature"))
        return any(PAM_FEATURE_NAME.lower() in str(f).lower() for f in features)

    def _resolve(self, name: str, kind: str) -> Dict[str, Any]:
        entry = self.connector.find_account(name, ["sAMAccountName", "objectClass"])
        if not entry:
            raise ValueError(f"{kind} non trovato: {name}")
        return entry

    def ensure_jit_ou(self):
        """Crea l'OU dei gruppi dinamici se manca"""
        if not self.connector.exists(self.jit_ou_dn):
            self.connector.add(
                self.jit_ou_dn,
                ["top", "organizationalUnit"],
                {"description": "Gruppi temporanei per accesso privilegiato JIT"}
            )

    def grant(
        self,
        user: str,
        group: str,
        minutes: int,
        method: str = METHOD_DYNAMIC
    ) -> JitGrant:
        """
        Concede l'appartenenza temporanea.

        Args:
            user: Utente (sAMAccountName, UPN o DN)
            group: Gruppo privilegiato (sAMAccountName o DN)
            minutes: Durata in minuti
            method: "dynamic" (gruppo con entryTTL) o "ttl" (PAM)

        Returns:
            JitGrant creata
        """
        seconds = self.validate_minutes(minutes)
        user_entry = self._resolve(user, "Utente")
        group_entry = self._resolve(group, "Gruppo")
        classes = [c.lower() for c in as_list(group_entry["attributes"].get("objectClass"))]
        if "group" not in classes:
            raise ValueError(f"{group} non è un gruppo")

        expires_at = self._now() + timedelta(seconds=seconds)

        if method == METHOD_TTL:
            if not self.pam_enabled():
                raise ValueError(
                    "Privileged Access Management non attivo nella foresta: "
                    "usare il metodo 'dynamic'"
                )
            self.connector.add_group_member(
                group_entry["dn"], f"<TTL={seconds},{user_entry['dn']}>"
            )
            return JitGrant(
                user_dn=user_entry["dn"],
                group_dn=group_entry["dn"],
                method=METHOD_TTL,
                ttl_seconds=seconds,
                expires_at=expires_at,
            )

        if method != METHOD_DYNAMIC:
            raise ValueError(f"Metodo JIT non valido: {method}")

        self.ensure_jit_ou()
        user_sam = first_value(user_entry["attributes"].get("sAMAccountName")) or rdn_value(user_entry["dn"])
        group_sam = first_value(group_entry["attributes"].get("sAMAccountName")) or rdn_value(group_entry["dn"])
        stamp = self._now().strftime("%Y%m%d%H%M%S")
        # cn e sAMAccountName: massimo 64 caratteri, il timestamp resta intero
        prefix = f"JIT-{user_sam}-{group_sam}"[:self.MAX_NAME - len(stamp) - 1]
        name = f"{prefix}-{stamp}"
        grant_dn = f"CN={escape_rdn(name)},{self.jit_ou_dn}"

        self.connector.add(
            grant_dn,
            ["dynamicObject", "group"],
            {
                "sAMAccountName": name,
                "groupType": encode_group_type("Global"),
                "entryTTL": seconds,
                "member": [user_entry["dn"]],
                "description": (
                    f"JIT {user_sam} -> {group_sam} fino al "
                    f"{expires_at.strftime('%d/%m/%Y %H:%M')}"
                ),
            }
        )
        self.connector.add_group_member(group_entry["dn"], grant_dn)

        return JitGrant(
            user_dn=user_entry["dn"],
            group_dn=group_entry["dn"],
            method=METHOD_DYNAMIC,
            ttl_seconds=seconds,
            expires_at=expires_at,
            grant_dn=grant_dn,
        )

    def list_grants(self, group: Optional[str] = None) -> List[JitGrant]:
        """
        Concessioni attive.

        Elenca i gruppi dinamici nell'OU JIT; se viene indicato un gruppo,
        include anche i membri con TTL (metodo PAM).
        """
        grants = []
        now = self._now()

        if self.connector.exists(self.jit_ou_dn):
            entries = self.connector.search(
                "(&(objectClass=dynamicObject)(objectClass=group))",
                ["entryTTL", "member", "memberOf"],
                search_base=self.jit_ou_dn,
                scope=LEVEL
            )
            for entry in entries:
                attrs = entry.get("attributes", {})
                ttl = int(first_value(attrs.get("entryTTL")) or 0)
                members = as_list(attrs.get("member"))
                for parent in as_list(attrs.get("memberOf")) or [""]:
                    grants.append(JitGrant(
                        user_dn=members[0] if members else "",
                        group_dn=parent,
                        method=METHOD_DYNAMIC,
                        ttl_seconds=ttl,
                        expires_at=now + timedelta(seconds=ttl),
                        grant_dn=entry["dn"],
                    ))

        if group:
            group_entry = self._resolve(group, "Gruppo")
            entry = self.connector.get_object(
                group_entry["dn"], ["member"], controls=[LINK_TTL_CONTROL]
            )
            for value in as_list(entry["attributes"].get("member")) if entry else []:
                parsed = parse_ttl_member(value)
                if not parsed:
                    continue
                ttl, member_dn = parsed
                grants.append(JitGrant(
                    user_dn=member_dn,
                    group_dn=group_entry["dn"],
                    method=METHOD_TTL,
                    ttl_seconds=ttl,
                    expires_at=now + timedelta(seconds=ttl),
                ))

        return sorted(grants, key=lambda g: g.expires_at)

    def extend(self, grant: JitGrant, minutes: int) -> JitGrant:
        """Reimposta la durata residua della concessione"""
        seconds = self.validate_minutes(minutes)
        if grant.method == METHOD_DYNAMIC:
            self.connector.replace_attributes(grant.grant_dn, {"entryTTL": seconds})
        else:
            self.connector.add_group_member(
                grant.group_dn, f"<TTL={seconds},{grant.user_dn}>"
            )
        grant.ttl_seconds = seconds
        grant.expires_at = self._now() + timedelta(seconds=seconds)
        return grant

    def revoke(self, grant: JitGrant):
        """Revoca subito la concessione"""
        if grant.method == METHOD_DYNAMIC:
            self.connector.delete(grant.grant_dn)
        else:
            self.connector.remove_group_member(grant.group_dn, grant.user_dn)

    def find_grant(self, identifier: str, group: Optional[str] = None) -> Optional[JitGrant]:
        """
        Cerca una concessione attiva.

        I gruppi dinamici si cercano per DN o nome; le concessioni con TTL
        per DN o sAMAccountName dell'utente, solo se viene indicato il gruppo.
        """
        wanted = {identifier.lower()}
        account = self.connector.find_account(identifier, ["sAMAccountName"])
        if account:
            wanted.add(account["dn"].lower())

        for grant in self.list_grants(group=group):
            if grant.method == METHOD_DYNAMIC:
                names = {grant.grant_dn.lower(), rdn_value(grant.grant_dn).lower()}
            else:
                names = {grant.user_dn.lower(), rdn_value(grant.user_dn).lower()}
            if wanted & names:
                return grant
        return None


def parse_ttl_member(value: str) -> Optional[tuple]:
    """
    Parsa un valore member restituito con il controllo LINK_TTL.

    Restituisce (ttl_secondi, dn) oppure None per i membri permanenti.
    """
    match = TTL_MEMBER_PATTERN.match(value.strip())
    if not match:
        return None
    if match.group(1):
        return int(match.group(1)), match.group(2)
    return int(match.group(3)), match.group(4)
