"""
GPO Backup - Backup e ripristino dei criteri di gruppo con scope of management

Un backup contiene gli attributi del Group Policy Container, i collegamenti
(gPLink) a dominio/OU/siti, il filtro WMI, i trustee del filtro di sicurezza
e la copia della cartella del criterio in SYSVOL.
"""

import json
import os
import re
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Any, Optional

from impacket.ldap import ldaptypes
from impacket.uuid import bin_to_string, string_to_bin
from ldap3.utils.conv import escape_filter_chars

from .ad_connector import ADOperationError
from .ad_utils import dn_to_domain, first_value, rebase_dn, is_under


GUID_PATTERN = re.compile(
    r"\{?[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\}?"
)
GPLINK_PATTERN = re.compile(r"\[LDAP://([^;\]]+);(\d+)\]", re.IGNORECASE)
WQL_FILTER_PATTERN = re.compile(r"\[([^;]*);(\{[^}]+\});(\d+)\]")

# Extended right "Apply Group Policy"
APPLY_GROUP_POLICY_GUID = "edacfd8f-ffb3-11d1-b41d-00a0c968f939"
# READ_CONTROL | ADS_RIGHT_DS_LIST_OBJECT | ADS_RIGHT_DS_READ_PROP | ADS_RIGHT_ACTRL_DS_LIST
GENERIC_READ_MASK = 0x00020094

# Flag di gPLink
LINK_DISABLED = 0x1
LINK_ENFORCED = 0x2

WELL_KNOWN_SIDS = {
    "S-1-1-0": "Everyone",
    "S-1-5-9": "Enterprise Domain Controllers",
    "S-1-5-11": "Authenticated Users",
    "S-1-5-18": "SYSTEM",
}

GPC_ATTRIBUTES = [
    "name",
    "displayName",
    "versionNumber",
    "flags",
    "gPCFileSysPath",
    "gPCFunctionalityVersion",
    "gPCMachineExtensionNames",
    "gPCUserExtensionNames",
    "gPCWQLFilter",
    "whenCreated",
    "whenChanged",
]

BACKUP_FILE = "gpo.json"
MANIFEST_FILE = "manifest.json"
SYSVOL_FOLDER = "sysvol"


@dataclass
class GpoLink:
    """Collegamento di un GPO a un contenitore (voce di gPLink)"""
    gpo_dn: str
    flags: int = 0

    @property
    def enabled(self) -> bool:
        return not self.flags & LINK_DISABLED

    @property
    def enforced(self) -> bool:
        return bool(self.flags & LINK_ENFORCED)

    @property
    def guid(self) -> str:
        match = GUID_PATTERN.search(self.gpo_dn)
        return normalize_guid(match.group(0)) if match else ""


@dataclass
class ScopeOfManagement:
    """Dominio, OU o sito a cui il GPO è collegato"""
    dn: str
    som_type: str            # domain, ou, site
    link_enabled: bool
    link_enforced: bool
    link_order: int
    block_inheritance: bool = False


@dataclass
class RestoreStep:
    step: str                # gpc, sysvol, wmi_filter, link, security
    target: str
    status: str              # done, skipped, failed
    message: str = ""


@dataclass
class RestoreResult:
    guid: str
    display_name: str
    created: bool
    steps: List[RestoreStep] = field(default_factory=list)

    def add(self, step: str, target: str, status: str, message: str = "") -> RestoreStep:
        item = RestoreStep(step, target, status, message)
        self.steps.append(item)
        return item


def normalize_guid(value: str) -> str:
    """GUID in forma {XXXXXXXX-...} maiuscola"""
    return "{" + value.strip("{}").upper() + "}"


def parse_gplink(value: Optional[str]) -> List[GpoLink]:
    """Parsa gPLink nell'ordine in cui i collegamenti compaiono"""
    if not value:
        return []
    return [
        GpoLink(gpo_dn=match.group(1), flags=int(match.group(2)))
        for match in GPLINK_PATTERN.finditer(value)
    ]


def format_gplink(links: List[GpoLink]) -> str:
    return "".join(f"[LDAP://{link.gpo_dn};{link.flags}]" for link in links)


def link_order(links: List[GpoLink], guid: str) -> int:
    """
    Ordine di collegamento come lo mostra GPMC: 1 è la precedenza più alta,
    cioè l'ultima voce di gPLink. 0 se il GPO non è collegato.
    """
    guid = normalize_guid(guid)
    for index, link in enumerate(links):
        if link.guid == guid:
            return len(links) - index
    return 0


def apply_trustees(sd_data: Optional[bytes]) -> List[str]:
    """SID che hanno il diritto 'Apply Group Policy' nella DACL"""
    if not sd_data:
        return []
    sd = ldaptypes.SR_SECURITY_DESCRIPTOR(data=sd_data)
    if not sd["Dacl"]:
        return []
    trustees = []
    for ace in sd["Dacl"].aces:
        if ace["AceType"] != ldaptypes.ACCESS_ALLOWED_OBJECT_ACE.ACE_TYPE:
            continue
        data = ace["Ace"]
        if not data["Mask"].hasPriv(ldaptypes.ACCESS_ALLOWED_OBJECT_ACE.ADS_RIGHT_DS_CONTROL_ACCESS):
            continue
        if not data.hasFlag(ldaptypes.ACCESS_ALLOWED_OBJECT_ACE.ACE_OBJECT_TYPE_PRESENT):
            continue
        if bin_to_string(data["ObjectType"]).lower() != APPLY_GROUP_POLICY_GUID:
            continue
        sid = data["Sid"].formatCanonical()
        if sid not in trustees:
            trustees.append(sid)
    return trustees


def _read_ace(sid: str) -> "ldaptypes.ACE":
    ace = ldaptypes.ACE()
    ace["AceType"] = ldaptypes.ACCESS_ALLOWED_ACE.ACE_TYPE
    ace["AceFlags"] = 0x00
    data = ldaptypes.ACCESS_ALLOWED_ACE()
    data["Mask"] = ldaptypes.ACCESS_MASK()
    data["Mask"]["Mask"] = GENERIC_READ_MASK
    data["Sid"] = ldaptypes.LDAP_SID()
    data["Sid"].fromCanonical(sid)
    ace["Ace"] = data
    return ace


def _apply_ace(sid: str) -> "ldaptypes.ACE":
    ace = ldaptypes.ACE()
    ace["AceType"] = ldaptypes.ACCESS_ALLOWED_OBJECT_ACE.ACE_TYPE
    ace["AceFlags"] = 0x00
    data = ldaptypes.ACCESS_ALLOWED_OBJECT_ACE()
    data["Mask"] = ldaptypes.ACCESS_MASK()
    data["Mask"]["Mask"] = ldaptypes.ACCESS_ALLOWED_OBJECT_ACE.ADS_RIGHT_DS_CONTROL_ACCESS
    data["ObjectType"] = string_to_bin(APPLY_GROUP_POLICY_GUID)
    data["InheritedObjectType"] = b""
    data["Sid"] = ldaptypes.LDAP_SID()
    data["Sid"].fromCanonical(sid)
    data["Flags"] = ldaptypes.ACCESS_ALLOWED_OBJECT_ACE.ACE_OBJECT_TYPE_PRESENT
    ace["Ace"] = data
    return ace


def grant_apply(sd_data: bytes, sids: List[str]) -> Optional[bytes]:
    """
    Aggiunge Read + Apply Group Policy per i SID indicati.

    Restituisce la nuova DACL serializzata, None se nulla da cambiare.
    """
    sd = ldaptypes.SR_SECURITY_DESCRIPTOR(data=sd_data)
    present = set(apply_trustees(sd_data))
    missing = [sid for sid in sids if sid not in present]
    if not missing:
        return None
    for sid in missing:
        sd["Dacl"].aces.append(_read_ace(sid))
        sd["Dacl"].aces.append(_apply_ace(sid))
    return sd.getData()


class GpoBackupManager:
    """
    Backup e ripristino dei GPO via LDAP + SYSVOL.
    """

    def __init__(self, connector, sysvol):
        """
        Args:
            connector: ADConnector connesso
            sysvol: SysvolClient (o oggetto con la stessa interfaccia)
        """
        self.connector = connector
        self.sysvol = sysvol

    # --- Percorsi ---

    @property
    def policies_dn(self) -> str:
        return f"CN=Policies,CN=System,{self.connector.base_dn}"

    @property
    def wmi_filters_dn(self) -> str:
        return f"CN=SOM,CN=WMIPolicy,CN=System,{self.connector.base_dn}"

    @property
    def domain(self) -> str:
        return dn_to_domain(self.connector.base_dn)

    def gpo_dn(self, guid: str) -> str:
        return f"CN={normalize_guid(guid)},{self.policies_dn}"

    # --- Lettura ---

    def _gpo_record(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        attrs = entry.get("attributes", {})
        return {
            "dn": entry["dn"],
            "guid": normalize_guid(first_value(attrs.get("name")) or ""),
            "display_name": first_value(attrs.get("displayName")) or "",
            "version": int(first_value(attrs.get("versionNumber")) or 0),
            "flags": int(first_value(attrs.get("flags")) or 0),
            "file_sys_path": first_value(attrs.get("gPCFileSysPath")) or "",
            "functionality_version": int(first_value(attrs.get("gPCFunctionalityVersion")) or 2),
            "machine_extensions": first_value(attrs.get("gPCMachineExtensionNames")) or "",
            "user_extensions": first_value(attrs.get("gPCUserExtensionNames")) or "",
            "wql_filter": first_value(attrs.get("gPCWQLFilter")) or "",
            "when_changed": str(first_value(attrs.get("whenChanged")) or ""),
        }

    def list_gpos(self) -> List[Dict[str, Any]]:
        """Elenco dei GPO del dominio"""
        entries = self.connector.search(
            "(objectClass=groupPolicyContainer)", GPC_ATTRIBUTES,
            search_base=self.policies_dn
        )
        gpos = [self._gpo_record(e) for e in entries]
        return sorted(gpos, key=lambda g: g["display_name"].lower())

    def find_gpo(self, identifier: str) -> Optional[Dict[str, Any]]:
        """Cerca un GPO per GUID o nome visualizzato"""
        if GUID_PATTERN.fullmatch(identifier.strip()):
            search_filter = (
                "(&(objectClass=groupPolicyContainer)"
                f"(name={normalize_guid(identifier)}))"
            )
        else:
            search_filter = (
                "(&(objectClass=groupPolicyContainer)"
                f"(displayName={escape_filter_chars(identifier)}))"
            )
        entries = self.connector.search(
            search_filter, GPC_ATTRIBUTES, search_base=self.policies_dn
        )
        return self._gpo_record(entries[0]) if entries else None

    def get_scope_of_management(self, guid: str) -> List[ScopeOfManagement]:
        """Dominio, OU e siti con un collegamento al GPO"""
        guid = normalize_guid(guid)
        search_filter = f"(gPLink=*{escape_filter_chars(guid)}*)"
        entries = list(self.connector.search(
            search_filter, ["gPLink", "gPOptions", "objectClass"]
        ))
        config_dn = getattr(self.connector, "configuration_dn", "")
        if config_dn:
            entries.extend(self.connector.search(
                f"(&(objectClass=site){search_filter})",
                ["gPLink", "gPOptions", "objectClass"],
                search_base=f"CN=Sites,{config_dn}"
            ))

        soms = []
        seen = set()
        for entry in entries:
            if entry["dn"].lower() in seen:
                continue
            seen.add(entry["dn"].lower())
            attrs = entry.get("attributes", {})
            links = parse_gplink(first_value(attrs.get("gPLink")))
            order = link_order(links, guid)
            if not order:
                continue
            link = links[len(links) - order]
            classes = [c.lower() for c in attrs.get("objectClass") or []]
            if "site" in classes:
                som_type = "site"
            elif "domaindns" in classes or "domain" in classes:
                som_type = "domain"
            else:
                som_type = "ou"
            soms.append(ScopeOfManagement(
                dn=entry["dn"],
                som_type=som_type,
                link_enabled=link.enabled,
                link_enforced=link.enforced,
                link_order=order,
                block_inheritance=int(first_value(attrs.get("gPOptions")) or 0) == 1,
            ))
        return soms

    def get_wmi_filter(self, wql_filter: str) -> Optional[Dict[str, str]]:
        """Risolve gPCWQLFilter nell'oggetto msWMI-Som"""
        match = WQL_FILTER_PATTERN.search(wql_filter or "")
        if not match:
            return None
        filter_id = match.group(2)
        entry = self.connector.get_object(
            f"CN={filter_id},{self.wmi_filters_dn}",
            ["msWMI-Name", "msWMI-Parm1", "msWMI-Parm2", "msWMI-ID"]
        )
        if not entry:
            return {"id": filter_id, "name": "", "description": "", "query": ""}
        attrs = entry["attributes"]
        return {
            "id": filter_id,
            "name": first_value(attrs.get("msWMI-Name")) or "",
            "description": first_value(attrs.get("msWMI-Parm1")) or "",
            "query": first_value(attrs.get("msWMI-Parm2")) or "",
        }

    def find_wmi_filter_by_name(self, name: str) -> Optional[str]:
        entries = self.connector.search(
            f"(&(objectClass=msWMI-Som)(msWMI-Name={escape_filter_chars(name)}))",
            ["msWMI-ID"],
            search_base=self.wmi_filters_dn
        )
        if not entries:
            return None
        return first_value(entries[0]["attributes"].get("msWMI-ID"))

    def _resolve_sid_name(self, sid: str) -> str:
        if sid in WELL_KNOWN_SIDS:
            return WELL_KNOWN_SIDS[sid]
        entries = self.connector.search(f"(objectSid={sid})", ["sAMAccountName"])
        if entries:
            return first_value(entries[0]["attributes"].get("sAMAccountName")) or sid
        return sid

    def get_security_filtering(self, gpo_dn: str) -> List[Dict[str, str]]:
        """Trustee del filtro di sicurezza (diritto Apply Group Policy)"""
        sd_data = self.connector.get_security_descriptor(gpo_dn)
        return [
            {"sid": sid, "name": self._resolve_sid_name(sid)}
            for sid in apply_trustees(sd_data)
        ]

    # --- Backup ---

    def backup(self, identifier: str, backup_root: str) -> str:
        """
        Esegue il backup di un GPO.

        Args:
            identifier: GUID o nome visualizzato
            backup_root: Cartella radice dei backup

        Returns:
            Cartella del backup
        """
        gpo = self.find_gpo(identifier)
        if not gpo:
            raise ValueError(f"GPO non trovato: {identifier}")

        folder = os.path.join(backup_root, gpo["guid"])
        os.makedirs(folder, exist_ok=True)

        data = {
            "backup_version": 1,
            "backed_up_at": datetime.now().isoformat(),
            "domain": self.domain,
            "base_dn": self.connector.base_dn,
            "configuration_dn": getattr(self.connector, "configuration_dn", ""),
            "gpo": gpo,
            "scope_of_management": [
                asdict(som) for som in self.get_scope_of_management(gpo["guid"])
            ],
            "wmi_filter": self.get_wmi_filter(gpo["wql_filter"]),
            "security_filtering": self.get_security_filtering(gpo["dn"]),
            "sysvol_files": 0,
        }

        if gpo["file_sys_path"]:
            remote = self.sysvol.share_path(gpo["file_sys_path"])
            data["sysvol_files"] = self.sysvol.download_tree(
                remote, os.path.join(folder, SYSVOL_FOLDER)
            )

        with open(os.path.join(folder, BACKUP_FILE), "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        return folder

    def backup_all(self, backup_root: str) -> List[Dict[str, str]]:
        """Backup di tutti i GPO con manifest riepilogativo"""
        manifest = []
        for gpo in self.list_gpos():
            folder = self.backup(gpo["guid"], backup_root)
            manifest.append({
                "guid": gpo["guid"],
                "display_name": gpo["display_name"],
                "folder": os.path.basename(folder),
            })

        with open(os.path.join(backup_root, MANIFEST_FILE), "w", encoding="utf-8") as f:
            json.dump({
                "domain": self.domain,
                "created": datetime.now().isoformat(),
                "gpos": manifest,
            }, f, indent=2, ensure_ascii=False)

        return manifest

    # --- Ripristino ---

    @staticmethod
    def load_backup(backup_dir: str) -> Dict[str, Any]:
        path = os.path.join(backup_dir, BACKUP_FILE)
        if not os.path.isfile(path):
            raise ValueError(f"Backup GPO non valido, manca {BACKUP_FILE} in {backup_dir}")
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def restore(
        self,
        backup_dir: str,
        target_name: Optional[str] = None,
        restore_links: bool = True,
        restore_security: bool = True
    ) -> RestoreResult:
        """
        Ripristina un backup nel dominio connesso.

        Il GPO esistente (stesso GUID, altrimenti stesso nome) viene
        aggiornato; se non esiste ne viene creato uno nuovo.
        """
        data = self.load_backup(backup_dir)
        source = data["gpo"]
        display_name = target_name or source["display_name"]

        existing = self.find_gpo(source["guid"])
        if existing is None:
            existing = self.find_gpo(display_name)

        if existing:
            result = RestoreResult(existing["guid"], display_name, created=False)
            version = self._next_version(existing["version"], source["version"])
            gpo_dn = existing["dn"]
            file_sys_path = existing["file_sys_path"] or self._file_sys_path(existing["guid"])
            changes = {
                "displayName": display_name,
                "versionNumber": version,
                "flags": source["flags"],
            }
            for attr, key in (("gPCMachineExtensionNames", "machine_extensions"),
                              ("gPCUserExtensionNames", "user_extensions")):
                if source.get(key):
                    changes[attr] = source[key]
            try:
                self.connector.replace_attributes(gpo_dn, changes)
            except ADOperationError as e:
                result.add("gpc", gpo_dn, "failed", e.description)
                return result
            result.add("gpc", gpo_dn, "done", "GPO esistente aggiornato")
        else:
            guid = normalize_guid(str(uuid.uuid4()))
            result = RestoreResult(guid, display_name, created=True)
            version = source["version"]
            gpo_dn = self.gpo_dn(guid)
            file_sys_path = self._file_sys_path(guid)
            try:
                self._create_gpc(gpo_dn, display_name, file_sys_path, source, version)
            except ADOperationError as e:
                result.add("gpc", gpo_dn, "failed", e.description)
                return result
            result.add("gpc", gpo_dn, "done", "nuovo GPO creato")

        self._restore_sysvol(backup_dir, file_sys_path, version, display_name, result)
        self._restore_wmi_filter(data.get("wmi_filter"), gpo_dn, result)

        if restore_links:
            self._restore_links(data, result.guid, gpo_dn, result)
        if restore_security:
            self._restore_security(data, gpo_dn, result)

        return result

    @staticmethod
    def _next_version(current: int, backed_up: int) -> int:
        """
        versionNumber: 16 bit alti utente, 16 bit bassi computer.
        La versione non deve diminuire, altrimenti i client non riapplicano.
        """
        current_user, current_machine = current >> 16, current & 0xFFFF
        backup_user, backup_machine = backed_up >> 16, backed_up & 0xFFFF
        if backup_user >= current_user and backup_machine >= current_machine and backed_up != current:
            return backed_up
        user = min(max(current_user, backup_user) + 1, 0xFFFF)
        machine = min(max(current_machine, backup_machine) + 1, 0xFFFF)
        return (user << 16) | machine

    def _file_sys_path(self, guid: str) -> str:
        return f"\\\\{self.domain}\\SysVol\\{self.domain}\\Policies\\{normalize_guid(guid)}"

    def _create_gpc(self, gpo_dn: str, display_name: str, file_sys_path: str,
                    source: Dict[str, Any], version: int):
        attributes = {
            "displayName": display_name,
            "gPCFileSysPath": file_sys_path,
            "versionNumber": version,
            "flags": source.get("flags", 0),
            "gPCFunctionalityVersion": source.get("functionality_version", 2),
        }
        if source.get("machine_extensions"):
            attributes["gPCMachineExtensionNames"] = source["machine_extensions"]
        if source.get("user_extensions"):
            attributes["gPCUserExtensionNames"] = source["user_extensions"]
        self.connector.add(gpo_dn, ["top", "container", "groupPolicyContainer"], attributes)
        for child in ("User", "Machine"):
            self.connector.add(f"CN={child},{gpo_dn}", ["top", "container"])

    def _restore_sysvol(self, backup_dir: str, file_sys_path: str, version: int,
                        display_name: str, result: RestoreResult):
        local = os.path.join(backup_dir, SYSVOL_FOLDER)
        remote = self.sysvol.share_path(file_sys_path)
        count = 0
        if os.path.isdir(local):
            count = self.sysvol.upload_tree(local, remote)
        else:
            self.sysvol.ensure_directory(remote)
        for child in ("User", "Machine"):
            self.sysvol.ensure_directory(f"{remote}\\{child}")
        gpt_ini = f"[General]\r\nVersion={version}\r\ndisplayName={display_name}\r\n"
        self.sysvol.write_file(f"{remote}\\GPT.INI", gpt_ini.encode("utf-8"))
        result.add("sysvol", remote, "done", f"{count} file copiati")

    def _restore_wmi_filter(self, wmi_filter: Optional[Dict[str, str]], gpo_dn: str,
                            result: RestoreResult):
        if not wmi_filter or not wmi_filter.get("name"):
            return
        filter_id = self.find_wmi_filter_by_name(wmi_filter["name"])
        if not filter_id:
            result.add(
                "wmi_filter", wmi_filter["name"], "skipped",
                "filtro WMI non presente nel dominio di destinazione"
            )
            return
        value = f"[{self.domain};{filter_id};0]"
        try:
            self.connector.replace_attributes(gpo_dn, {"gPCWQLFilter": value})
        except ADOperationError as e:
            result.add("wmi_filter", wmi_filter["name"], "failed", e.description)
            return
        result.add("wmi_filter", wmi_filter["name"], "done")

    def _map_som(self, som_dn: str, data: Dict[str, Any]) -> str:
        source_config = data.get("configuration_dn") or ""
        target_config = getattr(self.connector, "configuration_dn", "")
        if source_config and target_config and is_under(som_dn, source_config):
            return rebase_dn(som_dn, source_config, target_config)
        return rebase_dn(som_dn, data["base_dn"], self.connector.base_dn)

    def _restore_links(self, data: Dict[str, Any], guid: str, gpo_dn: str,
                       result: RestoreResult):
        for som in data.get("scope_of_management", []):
            som_dn = self._map_som(som["dn"], data)
            entry = self.connector.get_object(som_dn, ["gPLink"])
            if entry is None:
                result.add("link", som_dn, "skipped", "contenitore non presente")
                continue
            links = parse_gplink(first_value(entry["attributes"].get("gPLink")))
            if link_order(links, guid):
                result.add("link", som_dn, "skipped", "collegamento già presente")
                continue

            flags = 0
            if not som.get("link_enabled", True):
                flags |= LINK_DISABLED
            if som.get("link_enforced"):
                flags |= LINK_ENFORCED
            # Posizione che dà al nuovo collegamento l'ordine originale
            order = max(1, int(som.get("link_order", 1)))
            position = min(max(0, len(links) - (order - 1)), len(links))
            links.insert(position, GpoLink(gpo_dn=gpo_dn, flags=flags))

            try:
                self.connector.replace_attributes(som_dn, {"gPLink": format_gplink(links)})
            except ADOperationError as e:
                result.add("link", som_dn, "failed", e.description)
                continue
            result.add("link", som_dn, "done", f"ordine {link_order(links, guid)}")

    def _restore_security(self, data: Dict[str, Any], gpo_dn: str, result: RestoreResult):
        trustees = data.get("security_filtering") or []
        if not trustees:
            return

        sids = []
        for trustee in trustees:
            sid = self._map_trustee(trustee, data)
            if sid:
                sids.append(sid)
            else:
                result.add(
                    "security", trustee.get("name") or trustee["sid"], "skipped",
                    "trustee non risolvibile nel dominio di destinazione"
                )

        if not sids:
            return

        sd_data = self.connector.get_security_descriptor(gpo_dn)
        if not sd_data:
            result.add("security", gpo_dn, "failed", "impossibile leggere la DACL")
            return
        new_sd = grant_apply(sd_data, sids)
        if new_sd is None:
            result.add("security", gpo_dn, "skipped", "filtro di sicurezza già allineato")
            return
        try:
            self.connector.set_security_descriptor(gpo_dn, new_sd)
        except ADOperationError as e:
            result.add("security", gpo_dn, "failed", e.description)
            return
        result.add("security", gpo_dn, "done", f"{len(sids)} trustee")

    def _map_trustee(self, trustee: Dict[str, str], data: Dict[str, Any]) -> Optional[str]:
        """SID del trustee nel dominio di destinazione"""
        sid = trustee["sid"]
        if sid in WELL_KNOWN_SIDS or sid.startswith("S-1-5-32-"):
            return sid
        same_domain = data.get("base_dn", "").lower() == self.connector.base_dn.lower()
        if same_domain:
            return sid
        name = trustee.get("name")
        if not name or name == sid:
            return None
        entry = self.connector.find_account(name, ["objectSid"])
        if not entry:
            return None
        return str(first_value(entry["attributes"].get("objectSid")) or "") or None
