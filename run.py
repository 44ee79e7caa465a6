#!/usr/bin/env python3
"""
ADKeeper - Strumenti di amministrazione Active Directory

Uso:
    python run.py dump --server dc.domain.com --username admin@domain.com -o dominio.json
    python run.py gpo-backup --server dc.domain.com --username DOMAIN\\admin --all -o backup
    python run.py audit --server dc.domain.com --username admin@domain.com -o audit.pdf
    python run.py dhcp-compare dhcp1.xml dhcp2.xml -o confronto.xlsx
"""

import argparse
import os
import sys
from datetime import datetime

from adkeeper import console
from adkeeper.console import info, success, warning, error, verbose, print_colored


PASSWORD_ENV = "ADKEEPER_PASSWORD"
TARGET_PASSWORD_ENV = "ADKEEPER_TARGET_PASSWORD"

STATUS_COLORS = {
    "created": "green",
    "done": "green",
    "planned": "cyan",
    "exists": "white",
    "skipped": "yellow",
    "failed": "red",
}


class CommandError(Exception):
    """Errore di un comando, stampato in rosso senza traceback"""


# --- Connessione ---

def add_connection_arguments(parser: argparse.ArgumentParser, prefix: str = ""):
    """Opzioni di connessione comuni (prefix='target-' per il dominio di destinazione)"""
    label = "destinazione" if prefix else "sorgente"
    parser.add_argument(f"--{prefix}server", help=f"Hostname o IP del Domain Controller ({label})")
    parser.add_argument(f"--{prefix}username", help="Username (user@domain.com o DOMAIN\\user)")
    parser.add_argument(f"--{prefix}password", help="Password (meglio usare prompt interattivo)")
    parser.add_argument(f"--{prefix}domain", help="Nome dominio (se non specificato, estratto da username)")
    parser.add_argument(f"--{prefix}no-ssl", action="store_true",
                        help="Usa LDAP (389) invece di LDAPS (636)")
    parser.add_argument(f"--{prefix}skip-cert-check", action="store_true",
                        help="Non verificare certificato SSL (non consigliato)")
    parser.add_argument(f"--{prefix}port", type=int, help="Porta personalizzata")
    parser.add_argument(f"--{prefix}timeout", type=int, default=30,
                        help="Timeout connessione in secondi (default: 30)")


def connection_options(args, prefix: str = "") -> dict:
    key = prefix.replace("-", "_")
    options = {
        name: getattr(args, key + name)
        for name in ("server", "username", "password", "domain", "no_ssl",
                     "skip_cert_check", "port", "timeout")
    }
    if not options["server"] or not options["username"]:
        raise CommandError(
            f"Specificare --{prefix}server e --{prefix}username"
        )
    return options


def connect(args, prefix: str = ""):
    """Connette al DC; in caso di errore termina con codice 1"""
    from adkeeper.ad_connector import ADConnector

    options = connection_options(args, prefix)
    env_var = TARGET_PASSWORD_ENV if prefix else PASSWORD_ENV
    password = console.ask_password(options["password"], env_var, options["username"])
    options["password"] = password

    info(f"Connessione a {options['server']}...")
    connector = ADConnector(
        server=options["server"],
        username=options["username"],
        password=password,
        domain=options["domain"],
        use_ssl=not options["no_ssl"],
        port=options["port"],
        timeout=options["timeout"],
        validate_cert=not options["skip_cert_check"]
    )
    conn_info = connector.connect()
    if not conn_info.connected:
        raise CommandError(f"Connessione fallita: {conn_info.error}")

    success(f"Connesso a {conn_info.domain}")
    verbose(f"Base DN: {conn_info.base_dn}")
    server_info = connector.get_server_info()
    if server_info:
        verbose(
            f"DC: {server_info['dns_host_name']} "
            f"(livello funzionale dominio {server_info['domain_functionality']})"
        )
    return connector, options


def open_sysvol(options: dict):
    from adkeeper.sysvol import SysvolClient

    sysvol = SysvolClient(
        options["server"], options["username"], options["password"],
        domain=options["domain"], timeout=options["timeout"]
    )
    try:
        sysvol.connect()
    except Exception as e:
        raise CommandError(f"Connessione SMB a SYSVOL fallita: {e}") from e
    return sysvol


def print_actions(actions, show_all: bool):
    for action in actions:
        if not show_all and action.status in ("exists", "created", "done"):
            continue
        kind = getattr(action, "kind", None) or getattr(action, "step", "")
        target = getattr(action, "dn", None) or getattr(action, "target", "")
        text = f"    [{action.status}] {kind}: {target}"
        if action.message:
            text += f" ({action.message})"
        print_colored(text, STATUS_COLORS.get(action.status, "white"))


# --- Comandi directory ---

def cmd_dump(args):
    from adkeeper.directory_mirror import DirectoryDumper

    connector, _ = connect(args)
    try:
        info("Lettura OU, gruppi e utenti...")
        snapshot = DirectoryDumper(connector, search_base=args.search_base).dump()
    finally:
        connector.disconnect()

    snapshot.save(args.output)
    success(
        f"{len(snapshot.ous)} OU, {len(snapshot.groups)} gruppi, "
        f"{len(snapshot.users)} utenti salvati in {args.output}"
    )


def cmd_mirror(args):
    from adkeeper.directory_mirror import DirectoryDumper, DirectoryMirror, DirectorySnapshot

    if args.snapshot:
        snapshot = DirectorySnapshot.load(args.snapshot)
        info(f"Snapshot caricato: {snapshot.domain} ({snapshot.taken_at})")
    else:
        source, _ = connect(args)
        try:
            snapshot = DirectoryDumper(source, search_base=args.search_base).dump()
        finally:
            source.disconnect()

    target, _ = connect(args, prefix="target-")
    try:
        if args.dry_run:
            warning("Modalità dry-run: nessuna modifica verrà scritta")
        mirror = DirectoryMirror(
            target,
            dry_run=args.dry_run,
            include_system=args.include_system
        )
        actions = mirror.mirror(snapshot, ou_filter=args.ou)
    finally:
        target.disconnect()

    print_actions(actions, show_all=console.VERBOSE or args.dry_run)
    print()
    for kind, counts in mirror.get_summary().items():
        details = ", ".join(f"{status}: {count}" for status, count in sorted(counts.items()))
        print(f"  {kind:<12} {details}")

    if any(a.status == "failed" for a in actions):
        warning("Alcune operazioni sono fallite")


# --- Comandi GPO ---

def cmd_gpo_list(args):
    from adkeeper.gpo_backup import GpoBackupManager

    connector, _ = connect(args)
    try:
        gpos = GpoBackupManager(connector, sysvol=None).list_gpos()
    finally:
        connector.disconnect()

    print()
    print(f"  {'GUID':<40} {'Versione':>10}  Nome")
    for gpo in gpos:
        print(f"  {gpo['guid']:<40} {gpo['version']:>10}  {gpo['display_name']}")
    print()
    success(f"{len(gpos)} GPO trovati")


def cmd_gpo_backup(args):
    from adkeeper.gpo_backup import GpoBackupManager

    if not args.all and not args.gpo:
        raise CommandError("Indicare il GPO (nome o GUID) oppure --all")

    connector, options = connect(args)
    try:
        sysvol = open_sysvol(options)
        try:
            manager = GpoBackupManager(connector, sysvol)
            os.makedirs(args.output, exist_ok=True)
            if args.all:
                manifest = manager.backup_all(args.output)
                for item in manifest:
                    verbose(f"{item['display_name']} -> {item['folder']}")
                success(f"Backup di {len(manifest)} GPO in {args.output}")
            else:
                folder = manager.backup(args.gpo, args.output)
                success(f"Backup completato: {folder}")
        finally:
            sysvol.disconnect()
    finally:
        connector.disconnect()


def cmd_gpo_restore(args):
    from adkeeper.gpo_backup import GpoBackupManager

    connector, options = connect(args)
    try:
        sysvol = open_sysvol(options)
        try:
            result = GpoBackupManager(connector, sysvol).restore(
                args.backup,
                target_name=args.name,
                restore_links=not args.no_links,
                restore_security=not args.no_security
            )
        finally:
            sysvol.disconnect()
    finally:
        connector.disconnect()

    state = "creato" if result.created else "aggiornato"
    print_actions(result.steps, show_all=True)
    print()
    if any(step.status == "failed" for step in result.steps):
        warning(f"GPO {result.display_name} {state} con errori")
    else:
        success(f"GPO {result.display_name} {state} ({result.guid})")


# --- Comandi audit ---

def run_stale(connector, args):
    from adkeeper.stale_accounts import StaleAccountAuditor, fetch_accounts

    info("Analisi account inutilizzati...")
    accounts = fetch_accounts(connector)
    auditor = StaleAccountAuditor(inactive_days=args.inactive_days)
    issues = auditor.audit(accounts["users"], accounts["computers"])
    summary = auditor.get_summary()

    success(
        f"{summary['total_users']} utenti e {summary['total_computers']} computer analizzati "
        f"- Punteggio: {summary['score']}/100"
    )
    if summary['critical_count'] > 0:
        print_colored(f"    [!] {summary['critical_count']} account con problemi critici", "red")
    if summary['warning_count'] > 0:
        print_colored(f"    [!] {summary['warning_count']} account da verificare", "yellow")
    for issue in issues:
        verbose(f"[{issue.risk_level.value}] {issue.username}: {issue.description}")
    return issues, summary


def run_conflicts(connector):
    from adkeeper.conflict_objects import ConflictFinder

    info("Ricerca oggetti in conflitto...")
    finder = ConflictFinder(connector)
    conflicts = finder.find()
    summary = finder.get_summary()

    if conflicts:
        print_colored(
            f"    [!] {summary['total_conflicts']} oggetti in conflitto "
            f"(CNF: {summary['cnf_objects']}, LostAndFound: {summary['lost_and_found']}, "
            f"duplicati: {summary['duplicate_accounts']})",
            "yellow"
        )
    else:
        success("Nessun oggetto in conflitto")
    for conflict in conflicts:
        verbose(f"[{conflict.conflict_type}] {conflict.dn}")
    return conflicts, summary


def run_privileged(connector, args):
    from adkeeper.privileged_groups import PrivilegedGroupAuditor

    info("Analisi gruppi privilegiati...")
    auditor = PrivilegedGroupAuditor(
        connector,
        extra_groups=args.group,
        max_members=args.max_members
    )
    findings = auditor.audit()
    summary = auditor.get_summary()

    success(
        f"{len(auditor.groups)} gruppi, {summary['privileged_accounts']} account privilegiati"
    )
    for group in auditor.groups:
        verbose(f"{group.name}: {len(group.members)} membri")
        for member in group.members:
            for path in member.paths:
                verbose(f"  {member.username} ({' > '.join(path)})")
    if summary['critical_count'] > 0:
        print_colored(f"    [!] {summary['critical_count']} problemi critici", "red")
    if summary['warning_count'] > 0:
        print_colored(f"    [!] {summary['warning_count']} situazioni da verificare", "yellow")
    return auditor.groups, findings, summary


def save_json(args, domain: str, **sections):
    from adkeeper.report_generator import export_json

    if not args.json:
        return
    try:
        export_json(args.json, domain, **sections)
        success(f"JSON salvato: {args.json}")
    except OSError as e:
        error(f"Errore salvataggio JSON: {e}")


def cmd_stale(args):
    connector, _ = connect(args)
    try:
        issues, summary = run_stale(connector, args)
    finally:
        connector.disconnect()
    save_json(args, connector.domain, stale_accounts=issues, stale_summary=summary)


def cmd_conflicts(args):
    connector, _ = connect(args)
    try:
        conflicts, summary = run_conflicts(connector)
    finally:
        connector.disconnect()
    save_json(args, connector.domain, conflicts=conflicts, conflict_summary=summary)


def cmd_privileged(args):
    connector, _ = connect(args)
    try:
        groups, findings, summary = run_privileged(connector, args)
    finally:
        connector.disconnect()
    save_json(args, connector.domain, privileged_groups=groups,
              privileged_findings=findings, privileged_summary=summary)


def cmd_audit(args):
    from adkeeper.report_generator import ReportGenerator

    connector, _ = connect(args)
    try:
        stale_issues, stale_summary = run_stale(connector, args)
        print()
        conflicts, conflict_summary = run_conflicts(connector)
        print()
        groups, findings, privileged_summary = run_privileged(connector, args)
    finally:
        connector.disconnect()

    print()
    info(f"Generazione report PDF: {args.output}")
    output_path = ReportGenerator().generate(
        domain=connector.domain,
        stale_issues=stale_issues,
        stale_summary=stale_summary,
        conflicts=conflicts,
        conflict_summary=conflict_summary,
        privileged_groups=groups,
        privileged_findings=findings,
        privileged_summary=privileged_summary,
        output_path=args.output
    )
    success(f"Report generato: {output_path}")

    save_json(
        args, connector.domain,
        stale_accounts=stale_issues, stale_summary=stale_summary,
        conflicts=conflicts, conflict_summary=conflict_summary,
        privileged_groups=groups, privileged_findings=findings,
        privileged_summary=privileged_summary
    )

    # Riepilogo finale
    print()
    print_colored("=" * 60, "cyan")
    print_colored("RIEPILOGO AUDIT", "cyan")
    print_colored("=" * 60, "cyan")
    print()
    print(f"  Dominio: {connector.domain}")
    print(f"  Punteggio account: {stale_summary['score']}/100")
    print(f"  Oggetti in conflitto: {conflict_summary['total_conflicts']}")
    print(f"  Account privilegiati: {privileged_summary['privileged_accounts']}")
    print()
    if stale_summary['critical_count'] > 0 or privileged_summary['critical_count'] > 0:
        print_colored("  [!] ATTENZIONE: Trovati problemi critici!", "red")
        print_colored("      Consulta il report PDF per le raccomandazioni.", "yellow")
    else:
        print_colored("  [+] Nessun problema critico rilevato.", "green")
    print()


# --- DHCP ---

def cmd_dhcp_compare(args):
    from adkeeper.dhcp_compare import DhcpComparer, load_dhcp_export, STATUS_SAME
    from adkeeper.workbook import write_comparison_workbook

    info(f"Lettura export DHCP: {args.server_a}, {args.server_b}")
    config_a = load_dhcp_export(args.server_a, args.name_a)
    config_b = load_dhcp_export(args.server_b, args.name_b)
    verbose(f"{config_a.name}: {len(config_a.scopes)} scope")
    verbose(f"{config_b.name}: {len(config_b.scopes)} scope")

    comparison = DhcpComparer().compare(config_a, config_b)
    output = args.output or f"dhcp_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"
    write_comparison_workbook(comparison, output, only_differences=args.only_differences)

    print()
    for section, counts in comparison.get_summary().items():
        different = sum(c for status, c in counts.items() if status != STATUS_SAME)
        color = "yellow" if different else "white"
        print_colored(f"  {section:<20} differenze: {different}", color)
    print()
    success(f"Confronto salvato: {output}")


# --- JIT ---

def cmd_jit_grant(args):
    from adkeeper.jit_admin import JitAdmin

    connector, _ = connect(args)
    try:
        grant = JitAdmin(connector, jit_ou_dn=args.jit_ou).grant(
            args.user, args.group, args.minutes, method=args.method
        )
    finally:
        connector.disconnect()

    success(
        f"{grant.user_dn} membro di {grant.group_dn} fino al "
        f"{grant.expires_at.strftime('%d/%m/%Y %H:%M')}"
    )
    if grant.grant_dn:
        verbose(f"Gruppo dinamico: {grant.grant_dn}")


def cmd_jit_list(args):
    from adkeeper.jit_admin import JitAdmin

    connector, _ = connect(args)
    try:
        grants = JitAdmin(connector, jit_ou_dn=args.jit_ou).list_grants(group=args.group)
    finally:
        connector.disconnect()

    if not grants:
        info("Nessuna concessione JIT attiva")
        return
    print()
    for grant in grants:
        print(f"  {grant.expires_at.strftime('%d/%m/%Y %H:%M')}  "
              f"({grant.remaining_minutes} min)  [{grant.method}]")
        print(f"      utente: {grant.user_dn}")
        print(f"      gruppo: {grant.group_dn}")
        if grant.grant_dn:
            print(f"      concessione: {grant.grant_dn}")
    print()
    success(f"{len(grants)} concessioni attive")


def find_grant_or_fail(jit, identifier: str, group: str = None):
    grant = jit.find_grant(identifier, group=group)
    if grant is None:
        raise CommandError(f"Concessione JIT non trovata: {identifier}")
    return grant


def cmd_jit_extend(args):
    from adkeeper.jit_admin import JitAdmin

    connector, _ = connect(args)
    try:
        jit = JitAdmin(connector, jit_ou_dn=args.jit_ou)
        grant = jit.extend(find_grant_or_fail(jit, args.grant, args.group), args.minutes)
    finally:
        connector.disconnect()
    success(f"Concessione prorogata fino al {grant.expires_at.strftime('%d/%m/%Y %H:%M')}")


def cmd_jit_revoke(args):
    from adkeeper.jit_admin import JitAdmin

    connector, _ = connect(args)
    try:
        jit = JitAdmin(connector, jit_ou_dn=args.jit_ou)
        grant = find_grant_or_fail(jit, args.grant, args.group)
        jit.revoke(grant)
    finally:
        connector.disconnect()
    success(f"Concessione revocata: {grant.grant_dn or grant.user_dn}")


# --- Parser ---

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="ADKeeper - Strumenti di amministrazione Active Directory",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Esempi:
  %(prog)s dump --server dc.example.com --username admin@example.com -o dominio.json
  %(prog)s mirror --snapshot dominio.json --target-server dc.lab.local --target-username admin@lab.local --dry-run
  %(prog)s gpo-backup --server dc.example.com --username admin@example.com --all -o backup
  %(prog)s audit --server 192.168.1.10 --username DOMAIN\\admin --no-ssl
  %(prog)s dhcp-compare dhcp1.xml dhcp2.xml -o confronto.xlsx
  %(prog)s jit-grant --server dc.example.com --username admin@example.com --user mrossi --group "Domain Admins" --minutes 60

Password:
  La password può essere fornita tramite:
  - Prompt interattivo (consigliato)
  - Variabile ambiente ADKEEPER_PASSWORD (ADKEEPER_TARGET_PASSWORD per --target-*)
  - Opzione --password (sconsigliato, visibile in history)
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Output dettagliato")
    parser.add_argument("--version", action="version", version="ADKeeper v1.0.0")

    connection = argparse.ArgumentParser(add_help=False)
    add_connection_arguments(connection)

    audit_options = argparse.ArgumentParser(add_help=False)
    audit_options.add_argument("--json", help="Salva anche risultati in formato JSON")

    stale_options = argparse.ArgumentParser(add_help=False)
    stale_options.add_argument(
        "--inactive-days", type=int, default=90,
        help="Giorni senza login per considerare account inattivo (default: 90)"
    )

    privileged_options = argparse.ArgumentParser(add_help=False)
    privileged_options.add_argument(
        "--group", action="append", default=[],
        help="Gruppo privilegiato aggiuntivo (ripetibile)"
    )
    privileged_options.add_argument(
        "--max-members", type=int, default=5,
        help="Membri oltre i quali il gruppo è segnalato (default: 5)"
    )

    jit_options = argparse.ArgumentParser(add_help=False)
    jit_options.add_argument("--jit-ou", help="OU dei gruppi dinamici (default: OU=JIT,<dominio>)")

    commands = parser.add_subparsers(dest="command", metavar="COMANDO")
    commands.required = True

    p = commands.add_parser("dump", parents=[connection], help="Esporta OU, gruppi e utenti in JSON")
    p.add_argument("-o", "--output", default="adkeeper_dump.json", help="File JSON di output")
    p.add_argument("--search-base", help="DN da cui partire (default: dominio)")
    p.set_defaults(func=cmd_dump)

    p = commands.add_parser("mirror", parents=[connection],
                            help="Replica OU, gruppi e utenti in un altro dominio")
    add_connection_arguments(p, prefix="target-")
    p.add_argument("--snapshot", help="Usa un dump JSON invece di leggere il dominio sorgente")
    p.add_argument("--search-base", help="DN sorgente da cui partire per il dump")
    p.add_argument("--ou", help="Replica solo il sottoalbero di questa OU sorgente")
    p.add_argument("--include-system", action="store_true",
                   help="Includi gli oggetti di sistema (Domain Admins, krbtgt, ...)")
    p.add_argument("--dry-run", action="store_true", help="Mostra le azioni senza scrivere")
    p.set_defaults(func=cmd_mirror)

    p = commands.add_parser("gpo-list", parents=[connection], help="Elenca i GPO del dominio")
    p.set_defaults(func=cmd_gpo_list)

    p = commands.add_parser("gpo-backup", parents=[connection],
                            help="Backup GPO con link, filtro WMI e security filtering")
    p.add_argument("gpo", nargs="?", help="Nome o GUID del GPO")
    p.add_argument("--all", action="store_true", help="Backup di tutti i GPO")
    p.add_argument("-o", "--output", default="gpo_backup", help="Cartella dei backup")
    p.set_defaults(func=cmd_gpo_backup)

    p = commands.add_parser("gpo-restore", parents=[connection], help="Ripristina un backup GPO")
    p.add_argument("backup", help="Cartella del backup (<radice>/<GUID>)")
    p.add_argument("--name", help="Nome del GPO ripristinato (default: originale)")
    p.add_argument("--no-links", action="store_true", help="Non ricreare i link")
    p.add_argument("--no-security", action="store_true", help="Non ripristinare il security filtering")
    p.set_defaults(func=cmd_gpo_restore)

    p = commands.add_parser("stale", parents=[connection, audit_options, stale_options],
                            help="Account utente e computer inutilizzati")
    p.set_defaults(func=cmd_stale)

    p = commands.add_parser("conflicts", parents=[connection, audit_options],
                            help="Oggetti CNF, LostAndFound e account duplicati")
    p.set_defaults(func=cmd_conflicts)

    p = commands.add_parser("privileged", parents=[connection, audit_options, privileged_options],
                            help="Membri dei gruppi privilegiati")
    p.set_defaults(func=cmd_privileged)

    p = commands.add_parser(
        "audit", parents=[connection, audit_options, stale_options, privileged_options],
        help="Audit completo con report PDF"
    )
    p.add_argument("-o", "--output", default="adkeeper_report.pdf",
                   help="File PDF di output (default: adkeeper_report.pdf)")
    p.set_defaults(func=cmd_audit)

    p = commands.add_parser("dhcp-compare", help="Confronta gli export XML di due server DHCP")
    p.add_argument("server_a", help="Export XML del primo server")
    p.add_argument("server_b", help="Export XML del secondo server")
    p.add_argument("--name-a", help="Nome del primo server (default: dal file)")
    p.add_argument("--name-b", help="Nome del secondo server (default: dal file)")
    p.add_argument("-o", "--output", help="File xlsx di output")
    p.add_argument("--only-differences", action="store_true", help="Ometti le righe uguali")
    p.set_defaults(func=cmd_dhcp_compare)

    p = commands.add_parser("jit-grant", parents=[connection, jit_options],
                            help="Appartenenza temporanea a un gruppo privilegiato")
    p.add_argument("--user", required=True, help="Utente (sAMAccountName, UPN o DN)")
    p.add_argument("--group", required=True, help="Gruppo privilegiato")
    p.add_argument("--minutes", type=int, default=60, help="Durata in minuti (default: 60)")
    p.add_argument("--method", choices=["dynamic", "ttl"], default="dynamic",
                   help="dynamic: gruppo con entryTTL; ttl: membro con TTL (richiede PAM)")
    p.set_defaults(func=cmd_jit_grant)

    p = commands.add_parser("jit-list", parents=[connection, jit_options],
                            help="Concessioni JIT attive")
    p.add_argument("--group", help="Includi i membri con TTL di questo gruppo")
    p.set_defaults(func=cmd_jit_list)

    p = commands.add_parser("jit-extend", parents=[connection, jit_options],
                            help="Proroga una concessione JIT")
    p.add_argument("grant", help="Nome o DN del gruppo dinamico, oppure utente con --group")
    p.add_argument("--group", help="Gruppo privilegiato delle concessioni con TTL")
    p.add_argument("--minutes", type=int, default=60, help="Nuova durata in minuti")
    p.set_defaults(func=cmd_jit_extend)

    p = commands.add_parser("jit-revoke", parents=[connection, jit_options],
                            help="Revoca una concessione JIT")
    p.add_argument("grant", help="Nome o DN del gruppo dinamico, oppure utente con --group")
    p.add_argument("--group", help="Gruppo privilegiato delle concessioni con TTL")
    p.set_defaults(func=cmd_jit_revoke)

    return parser


def main(argv=None):
    """Funzione principale"""
    parser = build_parser()
    args = parser.parse_args(argv)
    console.VERBOSE = args.verbose

    console.print_banner()

    from adkeeper.ad_connector import ADOperationError

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\n")
        warning("Operazione annullata")
        sys.exit(130)
    except (CommandError, ValueError, ADOperationError, ConnectionError, OSError) as e:
        error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
