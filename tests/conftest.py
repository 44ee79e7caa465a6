"""
Fixture condivise: directory in memoria e SYSVOL su cartella locale
"""

import os
import re
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from ldap3 import BASE, LEVEL, MODIFY_ADD, MODIFY_DELETE, MODIFY_REPLACE

sys.path.insert(0, str(Path(__file__).parent.parent))

from adkeeper.ad_connector import ADOperationError
from adkeeper.ad_utils import as_list, datetime_to_filetime, dn_to_domain, is_under, split_dn
from adkeeper.jit_admin import parse_ttl_member


def make_filetime(days_ago: int, now: datetime = None) -> int:
    """FILETIME di X giorni fa"""
    return datetime_to_filetime((now or datetime.now()) - timedelta(days=days_ago))


def _unescape(value: str) -> str:
    return re.sub(r"\\([0-9a-fA-F]{2})", lambda m: chr(int(m.group(1), 16)), value)


def _link_target(value) -> str:
    """DN di un valore member, anche nella forma con TTL"""
    parsed = parse_ttl_member(str(value))
    return parsed[1] if parsed else str(value)


def _parse_filter(text: str, pos: int = 0):
    """Parser minimo dei filtri LDAP usati dal progetto"""
    assert text[pos] == "("
    op = text[pos + 1]
    if op in "&|":
        pos += 2
        children = []
        while text[pos] == "(":
            child, pos = _parse_filter(text, pos)
            children.append(child)
        return (op, children), pos + 1
    if op == "!":
        child, pos = _parse_filter(text, pos + 2)
        return ("!", child), pos + 1
    end = text.index(")", pos)
    attr, value = text[pos + 1:end].split("=", 1)
    return ("=", attr, value), end + 1


def _get_attr(attributes: dict, name: str):
    for key, value in attributes.items():
        if key.lower() == name.lower():
            return as_list(value)
    return []


def _match(node, attributes: dict) -> bool:
    if node[0] == "&":
        return all(_match(child, attributes) for child in node[1])
    if node[0] == "|":
        return any(_match(child, attributes) for child in node[1])
    if node[0] == "!":
        return not _match(node[1], attributes)

    _, attr, raw = node
    values = [str(v) for v in _get_attr(attributes, attr)]
    if raw == "*":
        return bool(values)
    pattern = ".*".join(re.escape(_unescape(part)) for part in raw.split("*"))
    regex = re.compile(pattern, re.IGNORECASE | re.DOTALL)
    return any(regex.fullmatch(v) for v in values)


class FakeConnector:
    """
    Sostituto in memoria di ADConnector con la stessa interfaccia
    usata dagli strumenti.
    """

    def __init__(self, base_dn: str = "DC=example,DC=local",
                 domain_sid: str = "S-1-5-21-1000-2000-3000", use_ssl: bool = True):
        self.base_dn = base_dn
        self.domain = dn_to_domain(base_dn)
        self.configuration_dn = f"CN=Configuration,{base_dn}"
        self.use_ssl = use_ssl
        self.objects = {}
        self.security_descriptors = {}
        self.default_security_descriptor = None
        self.operations = []
        self.fail_on = set()
        self.add_entry(base_dn, objectClass=["top", "domain", "domainDNS"], objectSid=domain_sid)

    # --- Helper per i test ---

    def add_entry(self, dn: str, **attributes):
        self.objects[dn.lower()] = {"dn": dn, "attributes": dict(attributes)}
        return dn

    def add_user(self, sam: str, container: str = None, **attributes):
        container = container or f"CN=Users,{self.base_dn}"
        dn = f"CN={sam},{container}"
        values = {
            "objectClass": ["top", "person", "organizationalPerson", "user"],
            "objectCategory": "person",
            "sAMAccountName": sam,
            "userPrincipalName": f"{sam}@{self.domain}",
            "userAccountControl": 512,
        }
        values.update(attributes)
        return self.add_entry(dn, **values)

    def add_group(self, sam: str, container: str = None, members=None, **attributes):
        container = container or f"CN=Users,{self.base_dn}"
        dn = f"CN={sam},{container}"
        values = {
            "objectClass": ["top", "group"],
            "sAMAccountName": sam,
            "groupType": -2147483646,
            "member": list(members or []),
        }
        values.update(attributes)
        return self.add_entry(dn, **values)

    def attrs(self, dn: str) -> dict:
        return self.objects[dn.lower()]["attributes"]

    def _view(self, entry) -> dict:
        """Copia della voce con il back-link memberOf calcolato"""
        attributes = dict(entry["attributes"])
        if "memberOf" not in attributes:
            parents = [
                other["dn"] for other in self.objects.values()
                if entry["dn"].lower() in [str(m).lower() for m in as_list(other["attributes"].get("member"))]
            ]
            if parents:
                attributes["memberOf"] = parents
        return {"dn": entry["dn"], "attributes": attributes, "raw_attributes": {}}

    # --- Interfaccia ADConnector ---

    def disconnect(self):
        self.operations.append(("disconnect", ""))


    def search(self, search_filter, attributes=None, search_base=None, scope="SUBTREE",
               size_limit=0, paged_size=1000, controls=None):
        base = search_base or self.base_dn
        node, _ = _parse_filter(search_filter)
        results = []
        for entry in list(self.objects.values()):
            dn = entry["dn"]
            if scope == BASE:
                in_scope = dn.lower() == base.lower()
            elif scope == LEVEL:
                parts = split_dn(dn)
                in_scope = ",".join(parts[1:]).lower() == ",".join(split_dn(base)).lower()
            else:
                in_scope = is_under(dn, base)
            if in_scope and _match(node, entry["attributes"]):
                results.append(self._view(entry))
        return results

    def get_object(self, dn, attributes=None, controls=None):
        entry = self.objects.get(dn.lower())
        if not entry:
            return None
        return self._view(entry)

    def exists(self, dn):
        return dn.lower() in self.objects

    def find_account(self, name, attributes=None):
        if "=" in name and "," in name:
            return self.get_object(name, attributes)
        for entry in self.objects.values():
            attrs = entry["attributes"]
            sam = str(attrs.get("sAMAccountName", "")).lower()
            upn = str(attrs.get("userPrincipalName", "")).lower()
            if name.lower() in (sam, upn) or sam == name.lower() + "$":
                return self.get_object(entry["dn"])
        return None

    def _check(self, operation, dn):
        if dn.lower() in self.fail_on:
            raise ADOperationError(operation, dn, "insufficientAccessRights")

    def add(self, dn, object_class, attributes=None):
        self._check("Creazione", dn)
        if dn.lower() in self.objects:
            raise ADOperationError("Creazione", dn, "entryAlreadyExists")
        values = dict(attributes or {})
        values["objectClass"] = as_list(object_class)
        self.add_entry(dn, **values)
        self.operations.append(("add", dn))

    def modify(self, dn, changes, controls=None):
        self._check("Modifica", dn)
        if dn.lower() not in self.objects:
            raise ADOperationError("Modifica", dn, "noSuchObject")
        attrs = self.attrs(dn)
        for name, operations in changes.items():
            for operation, values in operations:
                current = as_list(attrs.get(name))
                if operation == MODIFY_REPLACE:
                    attrs[name] = values[0] if len(values) == 1 else list(values)
                elif operation == MODIFY_ADD:
                    attrs[name] = current + list(values)
                elif operation == MODIFY_DELETE:
                    removed = {str(v).lower() for v in values}
                    attrs[name] = [v for v in current if _link_target(v).lower() not in removed]
        self.operations.append(("modify", dn))

    def replace_attributes(self, dn, attributes):
        self.modify(dn, {
            name: [(MODIFY_REPLACE, value if isinstance(value, list) else [value])]
            for name, value in attributes.items()
        })

    def delete(self, dn):
        self._check("Eliminazione", dn)
        if dn.lower() not in self.objects:
            raise ADOperationError("Eliminazione", dn, "noSuchObject")
        del self.objects[dn.lower()]
        self.operations.append(("delete", dn))

    def add_group_member(self, group_dn, member_value):
        self.modify(group_dn, {"member": [(MODIFY_ADD, [member_value])]})

    def remove_group_member(self, group_dn, member_dn):
        self.modify(group_dn, {"member": [(MODIFY_DELETE, [member_dn])]})

    def get_security_descriptor(self, dn):
        if dn.lower() in self.security_descriptors:
            return self.security_descriptors[dn.lower()]
        return self.default_security_descriptor if self.exists(dn) else None

    def set_security_descriptor(self, dn, data):
        self._check("Modifica", dn)
        self.security_descriptors[dn.lower()] = data
        self.operations.append(("sd", dn))

    def get_domain_sid(self):
        return str(self.attrs(self.base_dn).get("objectSid", ""))


class FakeSysvol:
    """SYSVOL simulato su una cartella locale"""

    def __init__(self, root: str):
        self.root = root

    def _local(self, path: str) -> str:
        parts = [p for p in path.split("\\") if p]
        return os.path.join(self.root, *parts)

    def share_path(self, unc_path: str) -> str:
        from adkeeper.sysvol import share_relative_path
        return share_relative_path(unc_path)

    def download_tree(self, path, local_dir):
        source = self._local(path)
        os.makedirs(local_dir, exist_ok=True)
        count = 0
        for current, _, files in os.walk(source):
            target = os.path.join(local_dir, os.path.relpath(current, source))
            os.makedirs(target, exist_ok=True)
            for name in files:
                with open(os.path.join(current, name), "rb") as src:
                    with open(os.path.join(target, name), "wb") as dst:
                        dst.write(src.read())
                count += 1
        return count

    def upload_tree(self, local_dir, path):
        return FakeSysvol(local_dir).download_tree("", self._local(path))

    def ensure_directory(self, path):
        os.makedirs(self._local(path), exist_ok=True)

    def write_file(self, path, data):
        local = self._local(path)
        os.makedirs(os.path.dirname(local), exist_ok=True)
        with open(local, "wb") as f:
            f.write(data)

    def read_file(self, path):
        with open(self._local(path), "rb") as f:
            return f.read()


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def sysvol(tmp_path):
    root = tmp_path / "sysvol_share"
    root.mkdir()
    return FakeSysvol(str(root))
