"""
DHCP Compare - Confronto configurazione di due server DHCP

Legge il file XML prodotto dall'export del server DHCP
(Export-DhcpServer / console DHCP) e confronta impostazioni server,
opzioni, classi, scope, esclusioni e prenotazioni.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Tuple
from xml.etree import ElementTree as ET


STATUS_SAME = "same"
STATUS_DIFFERENT = "different"
STATUS_ONLY_A = "only_a"
STATUS_ONLY_B = "only_b"

SECTIONS = [
    "server_settings",
    "server_options",
    "classes",
    "option_definitions",
    "scopes",
    "scope_options",
    "exclusions",
    "reservations",
]

# Nomi delle opzioni standard usati quando le definizioni mancano
STANDARD_OPTIONS = {
    "3": "Router",
    "6": "DNS Servers",
    "15": "DNS Domain Name",
    "42": "NTP Servers",
    "44": "WINS/NBNS Servers",
    "46": "WINS/NBT Node Type",
    "51": "Lease",
    "60": "PXEClient",
    "66": "Boot Server Host Name",
    "67": "Bootfile Name",
    "81": "Client FQDN",
    "119": "DNS Search List",
    "252": "WPAD",
}

# Contenitori da non trattare come impostazioni semplici
CONTAINER_TAGS = {
    "Classes", "OptionDefinitions", "OptionValues", "Scopes", "Policies",
    "Filters", "Failover", "Leases", "Reservations", "ExclusionRanges",
}


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def _child(elem: ET.Element, name: str) -> Optional[ET.Element]:
    for child in elem:
        if _local_name(child.tag) == name:
            return child
    return None


def _children(elem: Optional[ET.Element], name: str) -> List[ET.Element]:
    if elem is None:
        return []
    return [child for child in elem if _local_name(child.tag) == name]


def _text(elem: Optional[ET.Element], name: str) -> str:
    child = _child(elem, name) if elem is not None else None
    if child is None or child.text is None:
        return ""
    return child.text.strip()


def _leaf_values(elem: ET.Element) -> Dict[str, str]:
    """Figli senza sotto-elementi come {nome: testo}"""
    values = {}
    for child in elem:
        name = _local_name(child.tag)
        if len(child) == 0 and name not in CONTAINER_TAGS:
            values[name] = (child.text or "").strip()
    return values


def _parse_option_values(elem: Optional[ET.Element]) -> Dict[Tuple[str, str, str], List[str]]:
    options = {}
    for option in _children(elem, "OptionValue"):
        key = (
            _text(option, "OptionId"),
            _text(option, "VendorClass"),
            _text(option, "UserClass"),
        )
        options[key] = [
            (value.text or "").strip() for value in _children(option, "Value")
        ]
    return options


@dataclass
class DhcpScope:
    scope_id: str
    properties: Dict[str, str] = field(default_factory=dict)
    options: Dict[Tuple[str, str, str], List[str]] = field(default_factory=dict)
    exclusions: List[Tuple[str, str]] = field(default_factory=list)
    reservations: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class DhcpServerConfig:
    """Configurazione IPv4 di un server DHCP"""
    name: str
    settings: Dict[str, str] = field(default_factory=dict)
    options: Dict[Tuple[str, str, str], List[str]] = field(default_factory=dict)
    option_definitions: Dict[Tuple[str, str], Dict[str, str]] = field(default_factory=dict)
    classes: Dict[str, Dict[str, str]] = field(default_factory=dict)
    scopes: Dict[str, DhcpScope] = field(default_factory=dict)

    def option_name(self, option_id: str, vendor_class: str = "") -> str:
        definition = self.option_definitions.get((option_id, vendor_class))
        if definition and definition.get("Name"):
            return definition["Name"]
        return STANDARD_OPTIONS.get(option_id, "")


def parse_dhcp_export(root: ET.Element, name: str) -> DhcpServerConfig:
    """Converte l'albero XML dell'export in DhcpServerConfig"""
    if _local_name(root.tag) != "DHCPServer":
        raise ValueError(f"{name}: non è un export di server DHCP (radice {_local_name(root.tag)})")

    config = DhcpServerConfig(name=name)
    config.settings.update(_leaf_values(root))

    ipv4 = _child(root, "IPv4")
    if ipv4 is None:
        return config

    config.settings.update(_leaf_values(ipv4))

    filters = _child(ipv4, "Filters")
    if filters is not None:
        for attr, value in filters.attrib.items():
            config.settings[f"Filters.{attr}"] = value

    for relationship in _children(_child(ipv4, "Failover"), "Relationship"):
        rel_name = _text(relationship, "Name") or "?"
        for key, value in _leaf_values(relationship).items():
            if key != "Name":
                config.settings[f"Failover[{rel_name}].{key}"] = value

    for cls in _children(_child(ipv4, "Classes"), "Class"):
        values = _leaf_values(cls)
        config.classes[values.get("Name", "")] = values

    for definition in _children(_child(ipv4, "OptionDefinitions"), "OptionDefinition"):
        values = _leaf_values(definition)
        key = (values.get("OptionId", ""), values.get("VendorClass", ""))
        config.option_definitions[key] = values

    config.options = _parse_option_values(_child(ipv4, "OptionValues"))

    for scope_elem in _children(_child(ipv4, "Scopes"), "Scope"):
        scope = DhcpScope(scope_id=_text(scope_elem, "ScopeId"))
        scope.properties = {
            k: v for k, v in _leaf_values(scope_elem).items() if k != "ScopeId"
        }
        scope.options = _parse_option_values(_child(scope_elem, "OptionValues"))
        scope.exclusions = sorted(
            (_text(r, "StartRange"), _text(r, "EndRange"))
            for r in _children(_child(scope_elem, "ExclusionRanges"), "IPRange")
        )
        for reservation in _children(_child(scope_elem, "Reservations"), "Reservation"):
            values = _leaf_values(reservation)
            ip = values.pop("IPAddress", "")
            values["options"] = _parse_option_values(_child(reservation, "OptionValues"))
            scope.reservations[ip] = values
        config.scopes[scope.scope_id] = scope

    return config


def load_dhcp_export(path: str, name: Optional[str] = None) -> DhcpServerConfig:
    """Carica un file di export XML del server DHCP"""
    try:
        tree = ET.parse(path)
    except ET.ParseError as e:
        raise ValueError(f"Export DHCP non leggibile {path}: {e}") from e
    server_name = name or os.path.splitext(os.path.basename(path))[0]
    return parse_dhcp_export(tree.getroot(), server_name)


@dataclass
class ComparisonRow:
    """Riga di confronto"""
    section: str
    key: str
    attribute: str
    value_a: str
    value_b: str
    status: str


@dataclass
class DhcpComparison:
    server_a: str
    server_b: str
    rows: List[ComparisonRow] = field(default_factory=list)

    def section(self, name: str) -> List[ComparisonRow]:
        return [r for r in self.rows if r.section == name]

    def differences(self) -> List[ComparisonRow]:
        return [r for r in self.rows if r.status != STATUS_SAME]

    def get_summary(self) -> Dict[str, Dict[str, int]]:
        summary = {name: {} for name in SECTIONS}
        for row in self.rows:
            counts = summary[row.section]
            counts[row.status] = counts.get(row.status, 0) + 1
        return summary


def _status(a: Any, b: Any) -> str:
    if a is None:
        return STATUS_ONLY_B
    if b is None:
        return STATUS_ONLY_A
    return STATUS_SAME if a == b else STATUS_DIFFERENT


def _fmt(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "; ".join(str(v) for v in value)
    return str(value)


def _option_label(config_a: DhcpServerConfig, config_b: DhcpServerConfig,
                  key: Tuple[str, str, str]) -> str:
    option_id, vendor, user = key
    name = config_a.option_name(option_id, vendor) or config_b.option_name(option_id, vendor)
    label = f"{option_id} {name}".strip()
    if vendor:
        label += f" [vendor: {vendor}]"
    if user:
        label += f" [user: {user}]"
    return label


def _option_sort_key(key: Tuple[str, str, str]):
    option_id = key[0]
    return (int(option_id) if option_id.isdigit() else 0, key)


def _definitions_by_label(config: DhcpServerConfig) -> Dict[str, Dict[str, str]]:
    labelled = {}
    for (option_id, vendor), definition in config.option_definitions.items():
        label = f"{option_id} [{vendor}]" if vendor else option_id
        labelled[label] = definition
    return labelled


def _definition_sort_key(label: str):
    option_id = label.split()[0]
    return (int(option_id) if option_id.isdigit() else 0, label)


def _ip_sort_key(value: str):
    try:
        return tuple(int(part) for part in value.split("."))
    except ValueError:
        return (999999,)


class DhcpComparer:
    """
    Confronta due configurazioni DHCP e produce righe piatte per sezione.
    """

    def __init__(self, include_same: bool = True):
        self.include_same = include_same

    def compare(self, a: DhcpServerConfig, b: DhcpServerConfig) -> DhcpComparison:
        comparison = DhcpComparison(server_a=a.name, server_b=b.name)
        self._rows = comparison.rows

        self._compare_dicts("server_settings", "", a.settings, b.settings)
        self._compare_options("server_options", "Server", a, b, a.options, b.options)
        self._compare_records(
            "classes", a.classes, b.classes, sort_key=str
        )
        self._compare_records(
            "option_definitions",
            _definitions_by_label(a), _definitions_by_label(b),
            sort_key=_definition_sort_key
        )

        for scope_id in sorted(set(a.scopes) | set(b.scopes), key=_ip_sort_key):
            scope_a = a.scopes.get(scope_id)
            scope_b = b.scopes.get(scope_id)
            if scope_a is None or scope_b is None:
                present = scope_a or scope_b
                self._add(
                    "scopes", scope_id, "Scope",
                    present.properties.get("Name", "") if scope_a else None,
                    present.properties.get("Name", "") if scope_b else None,
                )
                continue
            self._compare_scope(a, b, scope_a, scope_b)

        del self._rows
        return comparison

    def _add(self, section: str, key: str, attribute: str, value_a: Any, value_b: Any):
        status = _status(value_a, value_b)
        if status == STATUS_SAME and not self.include_same:
            return
        self._rows.append(ComparisonRow(
            section=section,
            key=key,
            attribute=attribute,
            value_a=_fmt(value_a),
            value_b=_fmt(value_b),
            status=status,
        ))

    def _compare_dicts(self, section: str, key: str, a: Dict[str, Any], b: Dict[str, Any]):
        for attribute in sorted(set(a) | set(b)):
            self._add(section, key, attribute, a.get(attribute), b.get(attribute))

    def _compare_records(self, section: str, a: Dict[str, Dict], b: Dict[str, Dict], sort_key):
        for key in sorted(set(a) | set(b), key=sort_key):
            record_a = a.get(key)
            record_b = b.get(key)
            if record_a is None or record_b is None:
                self._add(section, key, "(oggetto)", "presente" if record_a is not None else None,
                          "presente" if record_b is not None else None)
                continue
            self._compare_dicts(section, key, record_a, record_b)

    def _compare_options(self, section: str, key_prefix: str,
                         config_a: DhcpServerConfig, config_b: DhcpServerConfig,
                         a: Dict, b: Dict):
        for key in sorted(set(a) | set(b), key=_option_sort_key):
            self._add(
                section, key_prefix,
                _option_label(config_a, config_b, key),
                a.get(key), b.get(key)
            )

    def _compare_scope(self, config_a: DhcpServerConfig, config_b: DhcpServerConfig,
                       scope_a: DhcpScope, scope_b: DhcpScope):
        scope_id = scope_a.scope_id
        self._compare_dicts("scopes", scope_id, scope_a.properties, scope_b.properties)
        self._compare_options(
            "scope_options", scope_id, config_a, config_b, scope_a.options, scope_b.options
        )

        exclusions_a = {f"{s} - {e}" for s, e in scope_a.exclusions}
        exclusions_b = {f"{s} - {e}" for s, e in scope_b.exclusions}
        for item in sorted(exclusions_a | exclusions_b, key=lambda r: _ip_sort_key(r.split(" - ")[0])):
            self._add(
                "exclusions", scope_id, item,
                "presente" if item in exclusions_a else None,
                "presente" if item in exclusions_b else None,
            )

        for ip in sorted(set(scope_a.reservations) | set(scope_b.reservations), key=_ip_sort_key):
            res_a = scope_a.reservations.get(ip)
            res_b = scope_b.reservations.get(ip)
            key = f"{scope_id} / {ip}"
            if res_a is None or res_b is None:
                present = res_a or res_b
                label = f"{present.get('Name', '')} ({present.get('ClientId', '')})"
                self._add("reservations", key, "Prenotazione",
                          label if res_a else None, label if res_b else None)
                continue
            plain_a = {k: v for k, v in res_a.items() if k != "options"}
            plain_b = {k: v for k, v in res_b.items() if k != "options"}
            self._compare_dicts("reservations", key, plain_a, plain_b)
            self._compare_options(
                "reservations", key, config_a, config_b,
                res_a.get("options", {}), res_b.get("options", {})
            )
