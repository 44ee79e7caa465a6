"""
AD Connector - Sessione LDAP verso un Domain Controller

Usato in lettura dagli audit e in scrittura da mirror, ripristino GPO e JIT.
"""

import ssl
from typing import Optional, Dict, List, Any
from dataclasses import dataclass
from ldap3 import (
    Server, Connection, ALL, NTLM, SIMPLE,
    SUBTREE, BASE, ALL_ATTRIBUTES,
    Tls, MODIFY_ADD, MODIFY_DELETE, MODIFY_REPLACE
)
from ldap3.core.exceptions import (
    LDAPBindError, LDAPSocketOpenError,
    LDAPInvalidCredentialsResult, LDAPException
)
from ldap3.protocol.microsoft import security_descriptor_control
from ldap3.utils.conv import escape_filter_chars

from .ad_utils import domain_to_dn, first_value, split_credentials


# Flag SD per leggere/scrivere solo la DACL
SD_FLAGS_DACL = 0x04


class ADOperationError(Exception):
    """Operazione di scrittura LDAP fallita"""

    def __init__(self, operation: str, dn: str, description: str):
        self.operation = operation
        self.dn = dn
        self.description = description
        super().__init__(f"{operation} fallita su {dn}: {description}")


@dataclass
class ADConnectionInfo:
    """Esito di connect(): in caso di errore connected=False ed error valorizzato"""
    server: str
    domain: str
    base_dn: str
    connected: bool = False
    ssl: bool = False
    user: str = ""
    error: str = ""


class ADConnector:
    """
    Connessione LDAP/LDAPS a un Domain Controller con le operazioni
    di lettura e scrittura usate dagli strumenti.
    """

    def __init__(
        self,
        server: str,
        username: str,
        password: str,
        domain: Optional[str] = None,
        use_ssl: bool = True,
        port: Optional[int] = None,
        timeout: int = 30,
        validate_cert: bool = True
    ):
        """
        Args:
            server: Hostname o IP del Domain Controller
            username: Username (può essere user@domain o DOMAIN\\user)
            domain: Nome dominio (opzionale, estratto da username)
            use_ssl: Usa LDAPS (porta 636) invece di LDAP (389)
            port: Porta personalizzata (default: 636 se SSL, 389 altrimenti)
            timeout: Timeout connessione in secondi
            validate_cert: Valida certificato SSL
        """
        self.server_address = server
        self.username = username
        self.password = password
        self.use_ssl = use_ssl
        self.timeout = timeout
        self.validate_cert = validate_cert

        self.port = port or (636 if use_ssl else 389)
        self.domain = split_credentials(username, domain or "")[1]
        self.base_dn = domain_to_dn(self.domain)
        # Valorizzato da connect() con configurationNamingContext
        self.configuration_dn = ""

        self._server: Optional[Server] = None
        self._connection: Optional[Connection] = None
        self._connected = False

    def connect(self) -> ADConnectionInfo:
        """Bind al DC; gli errori sono riportati in ADConnectionInfo.error"""
        info = ADConnectionInfo(
            server=self.server_address,
            domain=self.domain,
            base_dn=self.base_dn,
            ssl=self.use_ssl,
            user=self.username
        )

        try:
            tls_config = None
            if self.use_ssl:
                tls_config = Tls(
                    validate=ssl.CERT_REQUIRED if self.validate_cert else ssl.CERT_NONE
                )

            self._server = Server(
                self.server_address,
                port=self.port,
                use_ssl=self.use_ssl,
                get_info=ALL,
                tls=tls_config,
                connect_timeout=self.timeout
            )

            # DOMAIN\user richiede NTLM, user@domain il bind semplice
            if "\\" in self.username:
                auth_user, auth_method = self.username, NTLM
            elif "@" in self.username or not self.domain:
                auth_user, auth_method = self.username, SIMPLE
            else:
                auth_user, auth_method = f"{self.username}@{self.domain}", SIMPLE

            self._connection = Connection(
                self._server,
                user=auth_user,
                password=self.password,
                authentication=auth_method,
                auto_bind=True,
                receive_timeout=self.timeout
            )

            self._connected = True
            info.connected = True

            server_info = self._server.info
            if server_info:
                # Senza dominio noto si usa il naming context del server
                if not self.base_dn:
                    default_nc = first_value(
                        server_info.other.get("defaultNamingContext")
                    )
                    if default_nc:
                        self.base_dn = default_nc
                    elif server_info.naming_contexts:
                        self.base_dn = server_info.naming_contexts[0]
                    info.base_dn = self.base_dn
                config_nc = first_value(
                    server_info.other.get("configurationNamingContext")
                )
                if config_nc:
                    self.configuration_dn = config_nc

            if not self.configuration_dn and self.base_dn:
                self.configuration_dn = f"CN=Configuration,{self.base_dn}"

        except LDAPInvalidCredentialsResult:
            info.error = "Credenziali non valide. Verifica username e password."
        except LDAPSocketOpenError:
            info.error = (
                f"Impossibile connettersi al server {self.server_address}:{self.port}. "
                "Verifica che il server sia raggiungibile."
            )
        except LDAPBindError as e:
            info.error = f"Errore autenticazione: {str(e)}"
        except LDAPException as e:
            info.error = f"Errore LDAP: {str(e)}"
        except Exception as e:
            info.error = f"Errore connessione: {str(e)}"

        return info

    def disconnect(self):
        if self._connection:
            self._connection.unbind()
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return bool(self._connected and self._connection and self._connection.bound)

    def _require_connection(self):
        if not self.is_connected:
            raise ConnectionError("Non connesso ad Active Directory")

    def search(
        self,
        search_filter: str,
        attributes: List[str] = None,
        search_base: str = None,
        scope: str = SUBTREE,
        size_limit: int = 0,
        paged_size: int = 1000,
        controls: list = None
    ) -> List[Dict[str, Any]]:
        """
        Esegue ricerca LDAP leggendo tutte le pagine.

        Args:
            search_filter: Filtro LDAP (es: "(objectClass=user)")
            attributes: Lista attributi da recuperare
            search_base: Base DN per ricerca (default: base_dn)
            scope: Scope ricerca (SUBTREE, BASE, LEVEL)
            size_limit: Limite risultati (0 = nessun limite)
            paged_size: Dimensione pagina per paginazione
            controls: Controlli LDAP aggiuntivi

        Returns:
            Lista di dizionari {"dn", "attributes", "raw_attributes"}
        """
        self._require_connection()

        base = search_base or self.base_dn
        attrs = attributes or ALL_ATTRIBUTES

        results = []

        entries = self._connection.extend.standard.paged_search(
            search_base=base,
            search_filter=search_filter,
            search_scope=scope,
            attributes=attrs,
            size_limit=size_limit,
            paged_size=paged_size,
            controls=controls,
            generator=True
        )

        for entry in entries:
            if entry.get("type") != "searchResEntry":
                # Referral e riferimenti di continuazione
                continue
            results.append({
                "dn": entry["dn"],
                "attributes": dict(entry.get("attributes", {})),
                "raw_attributes": dict(entry.get("raw_attributes", {})),
            })

        return results

    def get_object(
        self,
        dn: str,
        attributes: List[str] = None,
        controls: list = None
    ) -> Optional[Dict[str, Any]]:
        """Legge un singolo oggetto (None se non esiste)"""
        self._require_connection()
        try:
            results = self.search(
                "(objectClass=*)",
                attributes,
                search_base=dn,
                scope=BASE,
                controls=controls
            )
        except LDAPException:
            # noSuchObject viene sollevato da paged_search
            return None
        return results[0] if results else None

    def exists(self, dn: str) -> bool:
        return self.get_object(dn, ["distinguishedName"]) is not None

    def find_account(
        self,
        name: str,
        attributes: List[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Cerca un utente, gruppo o computer per sAMAccountName, UPN o DN.
        """
        if "=" in name and "," in name:
            return self.get_object(name, attributes)
        if "\\" in name:
            name = name.split("\\", 1)[1]
        value = escape_filter_chars(name)
        search_filter = (
            f"(|(sAMAccountName={value})(userPrincipalName={value})"
            f"(sAMAccountName={value}$))"
        )
        results = self.search(search_filter, attributes)
        return results[0] if results else None

    def _check_result(self, ok: bool, operation: str, dn: str):
        if not ok:
            result = self._connection.result or {}
            description = result.get("message") or result.get("description", "errore sconosciuto")
            raise ADOperationError(operation, dn, description)

    def add(self, dn: str, object_class, attributes: Dict[str, Any] = None):
        """Crea un oggetto nella directory"""
        self._require_connection()
        ok = self._connection.add(dn, object_class, attributes or {})
        self._check_result(ok, "Creazione", dn)

    def modify(self, dn: str, changes: Dict[str, list], controls: list = None):
        """Modifica un oggetto (changes nel formato ldap3)"""
        self._require_connection()
        ok = self._connection.modify(dn, changes, controls=controls)
        self._check_result(ok, "Modifica", dn)

    def replace_attributes(self, dn: str, attributes: Dict[str, Any]):
        changes = {
            name: [(MODIFY_REPLACE, value if isinstance(value, list) else [value])]
            for name, value in attributes.items()
        }
        self.modify(dn, changes)

    def delete(self, dn: str):
        """Elimina un oggetto"""
        self._require_connection()
        ok = self._connection.delete(dn)
        self._check_result(ok, "Eliminazione", dn)

    def add_group_member(self, group_dn: str, member_value: str):
        """
        Aggiunge un membro a un gruppo.

        member_value può essere un DN o un valore '<TTL=secondi,DN>'.
        """
        self.modify(group_dn, {"member": [(MODIFY_ADD, [member_value])]})

    def remove_group_member(self, group_dn: str, member_dn: str):
        self.modify(group_dn, {"member": [(MODIFY_DELETE, [member_dn])]})

    def get_security_descriptor(self, dn: str) -> Optional[bytes]:
        """Recupera nTSecurityDescriptor (solo DACL) in formato binario"""
        entry = self.get_object(
            dn,
            ["nTSecurityDescriptor"],
            controls=security_descriptor_control(sdflags=SD_FLAGS_DACL)
        )
        if not entry:
            return None
        raw = entry.get("raw_attributes", {}).get("nTSecurityDescriptor")
        return first_value(raw)

    def set_security_descriptor(self, dn: str, data: bytes):
        """Scrive la DACL di un oggetto"""
        self.modify(
            dn,
            {"nTSecurityDescriptor": [(MODIFY_REPLACE, [data])]},
            controls=security_descriptor_control(sdflags=SD_FLAGS_DACL)
        )

    def get_domain_sid(self) -> str:
        """SID del dominio (prefisso dei SID degli account)"""
        entry = self.get_object(self.base_dn, ["objectSid"])
        if not entry:
            return ""
        return str(first_value(entry["attributes"].get("objectSid")) or "")

    def get_server_info(self) -> Dict[str, Any]:
        """Nome del DC e livelli funzionali letti dal rootDSE"""
        if not self._server or not self._server.info:
            return {}

        other = self._server.info.other
        return {
            "dns_host_name": first_value(other.get("dnsHostName")) or self.server_address,
            "domain_functionality": first_value(other.get("domainFunctionality")) or "",
            "forest_functionality": first_value(other.get("forestFunctionality")) or "",
            "naming_contexts": list(self._server.info.naming_contexts or []),
        }
