"""
AD Utils - Conversioni tempo e Distinguished Name per Active Directory
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from ldap3.utils.dn import to_dn


# Costanti per userAccountControl flags
UAC_FLAGS = {
    "ACCOUNTDISABLE": 0x0002,
    "LOCKOUT": 0x0010,
    "PASSWD_NOTREQD": 0x0020,
    "PASSWD_CANT_CHANGE": 0x0040,
    "ENCRYPTED_TEXT_PWD_ALLOWED": 0x0080,
    "NORMAL_ACCOUNT": 0x0200,
    "WORKSTATION_TRUST_ACCOUNT": 0x1000,
    "SERVER_TRUST_ACCOUNT": 0x2000,
    "DONT_EXPIRE_PASSWORD": 0x10000,
    "SMARTCARD_REQUIRED": 0x40000,
    "TRUSTED_FOR_DELEGATION": 0x80000,
    "PASSWORD_EXPIRED": 0x800000,
}

# groupType flags
GROUP_TYPE_GLOBAL = 0x00000002
GROUP_TYPE_DOMAIN_LOCAL = 0x00000004
GROUP_TYPE_UNIVERSAL = 0x00000008
GROUP_TYPE_SECURITY = 0x80000000

GROUP_SCOPES = {
    "Global": GROUP_TYPE_GLOBAL,
    "DomainLocal": GROUP_TYPE_DOMAIN_LOCAL,
    "Universal": GROUP_TYPE_UNIVERSAL,
}

# Windows FILETIME epoch (1601-01-01)
FILETIME_EPOCH = datetime(1601, 1, 1)
FILETIME_NEVER = 0x7FFFFFFFFFFFFFFF
TICKS_PER_SECOND = 10000000


def filetime_to_datetime(filetime: Any) -> Optional[datetime]:
    """Converte Windows FILETIME in datetime (None se 'mai')"""
    if isinstance(filetime, datetime):
        # ldap3 con schema caricato restituisce già datetime
        if filetime.year <= 1601 or filetime.year >= 9999:
            return None
        return filetime.replace(tzinfo=None)
    try:
        value = int(filetime or 0)
    except (TypeError, ValueError):
        return None
    if value <= 0 or value >= FILETIME_NEVER:
        return None
    try:
        return FILETIME_EPOCH + timedelta(microseconds=value // 10)
    except (ValueError, OverflowError):
        return None


def datetime_to_filetime(dt: datetime) -> int:
    """Converte datetime in Windows FILETIME"""
    delta = dt.replace(tzinfo=None) - FILETIME_EPOCH
    return (delta.days * 86400 + delta.seconds) * TICKS_PER_SECOND + delta.microseconds * 10


def parse_generalized_time(value: Any) -> Optional[datetime]:
    """Parsa attributi GeneralizedTime (whenCreated, whenChanged)"""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    try:
        return datetime.strptime(str(value)[:14], "%Y%m%d%H%M%S")
    except (ValueError, TypeError):
        return None


def parse_uac(uac_value: Any) -> Dict[str, bool]:
    """Parsa userAccountControl flags"""
    try:
        value = int(uac_value or 0)
    except (TypeError, ValueError):
        value = 0
    return {name: bool(value & flag) for name, flag in UAC_FLAGS.items()}


def decode_group_type(group_type: Any) -> Dict[str, str]:
    """Restituisce scope e categoria di un gruppo da groupType"""
    value = int(group_type or 0) & 0xFFFFFFFF
    if value & GROUP_TYPE_UNIVERSAL:
        scope = "Universal"
    elif value & GROUP_TYPE_DOMAIN_LOCAL:
        scope = "DomainLocal"
    else:
        scope = "Global"
    category = "Security" if value & GROUP_TYPE_SECURITY else "Distribution"
    return {"scope": scope, "category": category}


def encode_group_type(scope: str, category: str = "Security") -> int:
    """Calcola groupType (intero con segno, come lo memorizza AD)"""
    if scope not in GROUP_SCOPES:
        raise ValueError(f"Scope gruppo non valido: {scope}")
    value = GROUP_SCOPES[scope]
    if category == "Security":
        value |= GROUP_TYPE_SECURITY
    if value & 0x80000000:
        value -= 0x100000000
    return value


# --- Distinguished Name ---

def split_dn(dn: str) -> list:
    """Divide un DN nei suoi RDN rispettando le virgole con escape"""
    return [part.strip() for part in to_dn(dn) if part.strip()]


def split_credentials(username: str, domain: str = "") -> Tuple[str, str]:
    """Separa utente e dominio da user@domain o DOMAIN\\user; domain esplicito prevale"""
    if "@" in username:
        user, user_domain = username.split("@", 1)
        return user, domain or user_domain
    if "\\" in username:
        user_domain, user = username.split("\\", 1)
        return user, domain or user_domain
    return username, domain


def domain_to_dn(domain: str) -> str:
    """Converte nome dominio in Distinguished Name"""
    if not domain:
        return ""
    parts = domain.lower().split(".")
    return ",".join(f"DC={part}" for part in parts)


def dn_to_domain(dn: str) -> str:
    """Estrae il nome DNS del dominio dai componenti DC="""
    labels = [
        rdn.split("=", 1)[1]
        for rdn in split_dn(dn)
        if rdn.upper().startswith("DC=")
    ]
    return ".".join(labels).lower()


def parent_dn(dn: str) -> str:
    parts = split_dn(dn)
    return ",".join(parts[1:])


def rdn_value(dn: str) -> str:
    """Valore del primo RDN (es: 'Sales' per OU=Sales,DC=x)"""
    parts = split_dn(dn)
    if not parts:
        return ""
    return parts[0].split("=", 1)[1] if "=" in parts[0] else parts[0]


def dn_depth(dn: str) -> int:
    return len(split_dn(dn))


def is_under(dn: str, base_dn: str) -> bool:
    """True se dn coincide con base_dn o vi è contenuto"""
    dn_norm = ",".join(split_dn(dn)).lower()
    base_norm = ",".join(split_dn(base_dn)).lower()
    return dn_norm == base_norm or dn_norm.endswith("," + base_norm)


def rebase_dn(dn: str, source_base: str, target_base: str) -> str:
    """
    Sostituisce il suffisso source_base con target_base.

    Il confronto è case-insensitive; i DN esterni a source_base
    vengono restituiti invariati.
    """
    parts = split_dn(dn)
    base_parts = split_dn(source_base)
    if not base_parts or len(parts) < len(base_parts):
        return dn
    tail = [p.lower() for p in parts[-len(base_parts):]]
    if tail != [p.lower() for p in base_parts]:
        return dn
    head = parts[:-len(base_parts)]
    return ",".join(head + split_dn(target_base))


def first_value(value: Any) -> Any:
    """Restituisce il primo valore se l'attributo è multivalore"""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]
