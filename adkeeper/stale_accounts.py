"""
Stale Accounts - Rilevamento account utente e computer inutilizzati
"""

from datetime import datetime
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field
from enum import Enum

from .ad_utils import (
    filetime_to_datetime, parse_generalized_time, parse_uac, first_value
)


class Risk(Enum):
    """Livelli di rischio"""
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"
    OK = "ok"


@dataclass
class AccountIssue:
    """Problema rilevato su un account"""
    username: str
    display_name: str
    dn: str
    issue_type: str
    risk_level: Risk
    description: str
    recommendation: str
    object_type: str = "user"
    details: Dict[str, Any] = field(default_factory=dict)


USER_ATTRIBUTES = [
    "sAMAccountName",
    "userPrincipalName",
    "displayName",
    "userAccountControl",
    "pwdLastSet",
    "lastLogon",
    "lastLogonTimestamp",
    "whenCreated",
    "accountExpires",
    "adminCount",
]

COMPUTER_ATTRIBUTES = [
    "sAMAccountName",
    "dNSHostName",
    "operatingSystem",
    "userAccountControl",
    "pwdLastSet",
    "lastLogon",
    "lastLogonTimestamp",
    "whenCreated",
]


def get_last_logon(attrs: Dict[str, Any]) -> Optional[datetime]:
    """
    Ultimo accesso noto: il più recente tra lastLogonTimestamp
    (replicato) e lastLogon (solo del DC interrogato).
    """
    candidates = [
        filetime_to_datetime(attrs.get("lastLogonTimestamp")),
        filetime_to_datetime(attrs.get("lastLogon")),
    ]
    candidates = [c for c in candidates if c]
    return max(candidates) if candidates else None


def fetch_accounts(connector) -> Dict[str, List[Dict[str, Any]]]:
    """Recupera utenti e computer dal dominio"""
    users = connector.search(
        "(&(objectCategory=person)(objectClass=user))", USER_ATTRIBUTES
    )
    computers = connector.search("(objectClass=computer)", COMPUTER_ATTRIBUTES)
    return {"users": users, "computers": computers}


class StaleAccountAuditor:
    """
    Analizza account utente e computer per individuare quelli inutilizzati
    o configurati in modo pericoloso.
    """

    # Soglie configurabili
    INACTIVE_DAYS = 90          # Giorni senza login per considerare inattivo
    NEVER_LOGGED_DAYS = 30      # Account creato da X giorni ma mai loggato
    OLD_PASSWORD_DAYS = 180     # Password più vecchia di X giorni
    COMPUTER_PASSWORD_DAYS = 60  # I computer ruotano la password ogni 30 giorni

    def __init__(
        self,
        inactive_days: int = INACTIVE_DAYS,
        never_logged_days: int = NEVER_LOGGED_DAYS,
        old_password_days: int = OLD_PASSWORD_DAYS,
        now: Optional[datetime] = None
    ):
        """
        Inizializza l'auditor.

        Args:
            inactive_days: Giorni senza login per considerare inattivo
            never_logged_days: Giorni dalla creazione per account mai usati
            old_password_days: Età password per considerarla vecchia
            now: Istante di riferimento (default: adesso)
        """
        self.inactive_days = inactive_days
        self.never_logged_days = never_logged_days
        self.old_password_days = old_password_days
        self.now = now
        self.issues: List[AccountIssue] = []
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            "total_users": 0,
            "active_users": 0,
            "disabled_users": 0,
            "total_computers": 0,
            "active_computers": 0,
            "disabled_computers": 0,
            "inactive_users": 0,
            "never_logged_in": 0,
            "old_password": 0,
            "password_never_expires": 0,
            "password_not_required": 0,
            "expired_accounts": 0,
            "stale_computers": 0,
        }

    def audit(
        self,
        users: List[Dict[str, Any]],
        computers: Optional[List[Dict[str, Any]]] = None
    ) -> List[AccountIssue]:
        """
        Esegue audit completo di utenti e computer.

        Args:
            users: Utenti in formato ADConnector.search()
            computers: Computer in formato ADConnector.search()

        Returns:
            Lista di AccountIssue con problemi rilevati
        """
        self.issues = []
        self.stats = self._empty_stats()
        now = self.now or datetime.now()

        self.stats["total_users"] = len(users)
        for user in users:
            self._audit_user(user, now)

        computers = computers or []
        self.stats["total_computers"] = len(computers)
        for computer in computers:
            self._audit_computer(computer, now)

        return self.issues

    def _issue(self, entry: Dict, object_type: str, **kwargs) -> AccountIssue:
        attrs = entry.get("attributes", {})
        username = first_value(attrs.get("sAMAccountName")) or "Unknown"
        display_name = (
            first_value(attrs.get("displayName"))
            or first_value(attrs.get("dNSHostName"))
            or username
        )
        issue = AccountIssue(
            username=username,
            display_name=display_name,
            dn=entry.get("dn", ""),
            object_type=object_type,
            **kwargs
        )
        self.issues.append(issue)
        return issue

    def _audit_user(self, user: Dict[str, Any], now: datetime):
        attrs = user.get("attributes", {})
        uac_flags = parse_uac(first_value(attrs.get("userAccountControl")))

        if uac_flags["ACCOUNTDISABLE"]:
            self.stats["disabled_users"] += 1
            return
        self.stats["active_users"] += 1

        is_admin = str(first_value(attrs.get("adminCount")) or "0") == "1"

        # 1. Account scaduto ma ancora abilitato
        expires = filetime_to_datetime(attrs.get("accountExpires"))
        if expires and expires < now:
            self.stats["expired_accounts"] += 1
            self._issue(
                user, "user",
                issue_type="EXPIRED_ACCOUNT",
                risk_level=Risk.WARNING,
                description=f"Account scaduto il {expires.strftime('%d/%m/%Y')} ma ancora abilitato.",
                recommendation="Disabilitare l'account o aggiornarne la scadenza.",
                details={"expires": expires.isoformat()}
            )

        # 2. Ultimo accesso
        last_logon = get_last_logon(attrs)
        if last_logon:
            days_inactive = (now - last_logon).days
            if days_inactive > self.inactive_days:
                self.stats["inactive_users"] += 1
                self._issue(
                    user, "user",
                    issue_type="INACTIVE_ACCOUNT",
                    risk_level=Risk.CRITICAL if is_admin else Risk.WARNING,
                    description=f"Account non utilizzato da {days_inactive} giorni.",
                    recommendation=(
                        "Verificare se l'account è ancora necessario, "
                        "altrimenti disabilitarlo."
                    ),
                    details={
                        "last_logon": last_logon.isoformat(),
                        "days_inactive": days_inactive,
                        "is_admin": is_admin
                    }
                )
        else:
            created = parse_generalized_time(first_value(attrs.get("whenCreated")))
            if created:
                days_since_created = (now - created).days
                if days_since_created > self.never_logged_days:
                    self.stats["never_logged_in"] += 1
                    self._issue(
                        user, "user",
                        issue_type="NEVER_LOGGED_IN",
                        risk_level=Risk.INFO,
                        description=(
                            f"Account creato {days_since_created} giorni fa "
                            "ma mai utilizzato."
                        ),
                        recommendation=(
                            "Verificare se l'account è ancora necessario."
                        ),
                        details={
                            "created": created.isoformat(),
                            "days_since_created": days_since_created
                        }
                    )

        # 3. Password che non scade mai
        if uac_flags["DONT_EXPIRE_PASSWORD"]:
            self.stats["password_never_expires"] += 1
            self._issue(
                user, "user",
                issue_type="PASSWORD_NEVER_EXPIRES",
                risk_level=Risk.CRITICAL if is_admin else Risk.WARNING,
                description="La password di questo account non scade mai.",
                recommendation=(
                    "URGENTE: " if is_admin else ""
                ) + "Rimuovere il flag 'Password never expires'.",
                details={"is_admin": is_admin}
            )

        # 4. Password non richiesta
        if uac_flags["PASSWD_NOTREQD"]:
            self.stats["password_not_required"] += 1
            self._issue(
                user, "user",
                issue_type="PASSWORD_NOT_REQUIRED",
                risk_level=Risk.CRITICAL,
                description="Questo account può avere una password vuota.",
                recommendation="URGENTE: Rimuovere il flag 'Password not required'.",
                details={"is_admin": is_admin}
            )

        # 5. Password vecchia
        pwd_last_set = filetime_to_datetime(attrs.get("pwdLastSet"))
        if pwd_last_set:
            pwd_age_days = (now - pwd_last_set).days
            if pwd_age_days > self.old_password_days:
                self.stats["old_password"] += 1
                self._issue(
                    user, "user",
                    issue_type="OLD_PASSWORD",
                    risk_level=Risk.WARNING if is_admin else Risk.INFO,
                    description=f"Password non cambiata da {pwd_age_days} giorni.",
                    recommendation="Richiedere il cambio password.",
                    details={
                        "password_age_days": pwd_age_days,
                        "last_change": pwd_last_set.isoformat(),
                        "is_admin": is_admin
                    }
                )

    def _audit_computer(self, computer: Dict[str, Any], now: datetime):
        attrs = computer.get("attributes", {})
        uac_flags = parse_uac(first_value(attrs.get("userAccountControl")))

        if uac_flags["ACCOUNTDISABLE"]:
            self.stats["disabled_computers"] += 1
            return
        self.stats["active_computers"] += 1

        # I DC non vengono mai segnalati
        if uac_flags["SERVER_TRUST_ACCOUNT"]:
            return

        last_logon = get_last_logon(attrs)
        pwd_last_set = filetime_to_datetime(attrs.get("pwdLastSet"))

        if last_logon:
            days_inactive = (now - last_logon).days
        else:
            created = parse_generalized_time(first_value(attrs.get("whenCreated")))
            if not created:
                return
            days_inactive = (now - created).days

        if days_inactive <= self.inactive_days:
            return

        pwd_age_days = (now - pwd_last_set).days if pwd_last_set else None
        # Una password computer recente indica che la macchina è ancora attiva
        if pwd_age_days is not None and pwd_age_days <= self.COMPUTER_PASSWORD_DAYS:
            return

        self.stats["stale_computers"] += 1
        self._issue(
            computer, "computer",
            issue_type="STALE_COMPUTER",
            risk_level=Risk.WARNING,
            description=(
                f"Computer non autenticato da {days_inactive} giorni."
                if last_logon else
                f"Computer creato {days_inactive} giorni fa e mai autenticato."
            ),
            recommendation=(
                "Verificare che la macchina esista ancora, "
                "quindi disabilitare e rimuovere l'account."
            ),
            details={
                "days_inactive": days_inactive,
                "password_age_days": pwd_age_days,
                "operating_system": first_value(attrs.get("operatingSystem")) or "",
            }
        )

    def get_issues_by_risk(self, risk_level: Risk) -> List[AccountIssue]:
        """Filtra issues per livello di rischio"""
        return [i for i in self.issues if i.risk_level == risk_level]

    def get_issues_by_type(self, issue_type: str) -> List[AccountIssue]:
        """Filtra issues per tipo"""
        return [i for i in self.issues if i.issue_type == issue_type]

    def get_summary(self) -> Dict[str, Any]:
        """
        Genera riepilogo dell'audit.

        Returns:
            Dizionario con statistiche e valutazione
        """
        critical = len(self.get_issues_by_risk(Risk.CRITICAL))
        warning = len(self.get_issues_by_risk(Risk.WARNING))
        info = len(self.get_issues_by_risk(Risk.INFO))

        # Critico: -15 punti, Warning: -5 punti, Info: -1 punto
        score = 100 - (critical * 15) - (warning * 5) - (info * 1)
        score = max(0, min(100, score))

        if critical > 5:
            assessment = "CRITICO"
            assessment_text = "Numerosi account presentano problemi gravi."
        elif critical > 0:
            assessment = "ATTENZIONE"
            assessment_text = "Alcuni account hanno configurazioni pericolose."
        elif warning > 10:
            assessment = "MIGLIORABILE"
            assessment_text = "Diversi account inutilizzati da ripulire."
        elif warning > 0:
            assessment = "BUONO"
            assessment_text = "Pochi account da verificare."
        else:
            assessment = "OTTIMO"
            assessment_text = "Nessun account inutilizzato rilevato."

        summary = dict(self.stats)
        summary.update({
            "total_issues": len(self.issues),
            "critical_count": critical,
            "warning_count": warning,
            "info_count": info,
            "score": score,
            "assessment": assessment,
            "assessment_text": assessment_text,
        })
        return summary
