import os
import secrets
import subprocess
import tempfile
from pathlib import Path
from typing import List

from autoprovision.logger import debug, get_console
from autoprovision.src.certificates.local_certificates import LocalCertificate
from autoprovision.src.core.errors import KeychainError


class KeychainInstaller:
    """Installs signing identities into a macOS keychain with `security`"""

    def __init__(self, path: str, password: str, runner=subprocess.run):
        self.path = os.path.expanduser(path)
        self.password = password
        self.console = get_console()
        self._run = runner

    def _security(self, *args: str) -> subprocess.CompletedProcess:
        result = self._run(["security", *args], capture_output=True, text=True)
        if result.returncode != 0:
            # Only the subcommand is reported, the arguments can hold secrets
            raise KeychainError(
                f"security {args[0]} failed ({result.returncode}): {result.stderr.strip()}"
            )
        return result

    def keychain_list(self) -> List[str]:
        result = self._security("list-keychains", "-d", "user")
        return [k.strip().strip('"') for k in result.stdout.splitlines() if k.strip()]

    def ensure_keychain(self) -> None:
        """Create the keychain when missing, unlock it and put it on the search list"""
        if not os.path.exists(self.path):
            self.console.log(f"[yellow]Creating keychain: {self.path}")
            self._security("create-keychain", "-p", self.password, self.path)
            self._security("set-keychain-settings", "-lut", "21600", self.path)

        self.console.log(f"[yellow]Unlocking keychain: {self.path}")
        self._security("unlock-keychain", "-p", self.password, self.path)

        keychains = self.keychain_list()
        if self.path not in keychains:
            self.console.log(f"[yellow]Adding to keychain search list: {self.path}")
            self._security("list-keychains", "-d", "user", "-s", *keychains, self.path)

    def install_certificate(self, certificate: LocalCertificate) -> None:
        self.console.log(f"[yellow]Importing certificate: {certificate.common_name}")
        passphrase = secrets.token_hex(16)

        fd, p12_path = tempfile.mkstemp(suffix=".p12")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(certificate.to_pkcs12(passphrase.encode()))
            self._security(
                "import",
                p12_path,
                "-k",
                self.path,
                "-f",
                "pkcs12",
                "-P",
                passphrase,
                "-A",
                "-T",
                "/usr/bin/codesign",
                "-T",
                "/usr/bin/security",
            )
        finally:
            Path(p12_path).unlink(missing_ok=True)

        # Allow codesign to use the key without prompting
        self._security(
            "set-key-partition-list",
            "-S",
            "apple-tool:,apple:,codesign:",
            "-s",
            "-k",
            self.password,
            self.path,
        )
        debug(f"Installed {certificate} into {self.path}")

    def install_certificates(self, certificates: List[LocalCertificate]) -> None:
        self.ensure_keychain()
        for certificate in certificates:
            self.install_certificate(certificate)
        self.console.log("[green]Certificates installed")
