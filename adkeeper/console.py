"""
Console - Output colorato per la riga di comando ADKeeper
"""

import getpass
import os
import sys

try:
    from colorama import init, Fore, Style
    init()
    HAS_COLOR = True
except ImportError:
    HAS_COLOR = False


VERBOSE = False


def print_banner():
    """Stampa banner applicazione"""
    banner = """
    ╔════════════════════════════════════════════════════════════════════╗
    ║                                                                    ║
    ║   █████╗ ██████╗ ██╗  ██╗███████╗███████╗██████╗ ███████╗██████╗   ║
    ║  ██╔══██╗██╔══██╗██║ ██╔╝██╔════╝██╔════╝██╔══██╗██╔════╝██╔══██╗  ║
    ║  ███████║██║  ██║█████╔╝ █████╗  █████╗  ██████╔╝█████╗  ██████╔╝  ║
    ║  ██╔══██║██║  ██║██╔═██╗ ██╔══╝  ██╔══╝  ██╔═══╝ ██╔══╝  ██╔══██╗  ║
    ║  ██║  ██║██████╔╝██║  ██╗███████╗███████╗██║     ███████╗██║  ██║  ║
    ║  ╚═╝  ╚═╝╚═════╝ ╚═╝  ╚═╝╚══════╝╚══════╝╚═╝     ╚══════╝╚═╝  ╚═╝  ║
    ║                                                                    ║
    ║       Strumenti di amministrazione Active Directory  v1.0.0        ║
    ║                                                                    ║
    ╚════════════════════════════════════════════════════════════════════╝
    """

    if HAS_COLOR:
        print(Fore.CYAN + banner + Style.RESET_ALL)
    else:
        print(banner)
    print()


def print_colored(text: str, color: str = "white"):
    """Stampa testo colorato"""
    if HAS_COLOR:
        colors_map = {
            "red": Fore.RED,
            "green": Fore.GREEN,
            "yellow": Fore.YELLOW,
            "blue": Fore.BLUE,
            "cyan": Fore.CYAN,
            "white": Fore.WHITE,
        }
        print(colors_map.get(color, Fore.WHITE) + text + Style.RESET_ALL)
    else:
        print(text)


def info(text: str):
    print_colored(f"[*] {text}", "cyan")


def success(text: str):
    print_colored(f"[+] {text}", "green")


def warning(text: str):
    print_colored(f"[!] {text}", "yellow")


def error(text: str):
    print_colored(f"[!] {text}", "red")


def verbose(text: str):
    """Messaggi secondari, solo con --verbose"""
    if VERBOSE:
        print_colored(f"    {text}", "white")


def ask_password(explicit: str, env_var: str, username: str) -> str:
    """
    Ottiene la password: opzione, variabile ambiente o prompt interattivo.
    """
    password = explicit
    if not password:
        password = os.environ.get(env_var)
    if not password:
        try:
            password = getpass.getpass(f"Password per {username}: ")
        except KeyboardInterrupt:
            print("\n")
            warning("Operazione annullata")
            sys.exit(130)

    if not password:
        error("Password richiesta")
        sys.exit(1)

    return password
