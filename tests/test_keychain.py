import subprocess

import pytest

from autoprovision.src.core.errors import KeychainError
from autoprovision.src.core.keychain import KeychainInstaller


class FakeSecurity:
    """Stands in for subprocess.run, recording `security` invocations"""

    def __init__(self, keychains=(), fail_on=None):
        self.keychains = list(keychains)
        self.fail_on = fail_on
        self.commands = []

    def __call__(self, args, capture_output=True, text=True):
        self.commands.append(args)
        subcommand = args[1]
        if subcommand == self.fail_on:
            return subprocess.CompletedProcess(args, 1, "", "The specified keychain could not be found.")
        stdout = ""
        if args[1:] == ["list-keychains", "-d", "user"]:
            stdout = "\n".join(f'    "{k}"' for k in self.keychains)
        return subprocess.CompletedProcess(args, 0, stdout, "")

    def subcommands(self):
        return [c[1] for c in self.commands]


class FakeCertificate:
    common_name = "Apple Development: John Doe (ABCDE12345)"

    def to_pkcs12(self, passphrase):
        return b"p12"


def test_new_keychain_is_created_and_listed(tmp_path):
    path = str(tmp_path / "build.keychain")
    security = FakeSecurity(keychains=["/Users/me/login.keychain-db"])

    KeychainInstaller(path, "password", runner=security).ensure_keychain()

    assert security.subcommands() == [
        "create-keychain",
        "set-keychain-settings",
        "unlock-keychain",
        "list-keychains",
        "list-keychains",
    ]
    assert security.commands[-1][-2:] == ["/Users/me/login.keychain-db", path]


def test_existing_listed_keychain_is_only_unlocked(tmp_path):
    keychain = tmp_path / "build.keychain"
    keychain.write_bytes(b"")
    security = FakeSecurity(keychains=[str(keychain)])

    KeychainInstaller(str(keychain), "password", runner=security).ensure_keychain()

    assert security.subcommands() == ["unlock-keychain", "list-keychains"]


def test_install_certificate(tmp_path):
    keychain = tmp_path / "build.keychain"
    keychain.write_bytes(b"")
    security = FakeSecurity(keychains=[str(keychain)])

    KeychainInstaller(str(keychain), "password", runner=security).install_certificates([FakeCertificate()])

    assert security.subcommands()[-2:] == ["import", "set-key-partition-list"]
    import_command = security.commands[-2]
    assert "-T" in import_command and "/usr/bin/codesign" in import_command


def test_failure_names_subcommand_without_secrets(tmp_path):
    security = FakeSecurity(fail_on="unlock-keychain")
    installer = KeychainInstaller(str(tmp_path / "build.keychain"), "hunter2", runner=security)

    with pytest.raises(KeychainError) as exc_info:
        installer.ensure_keychain()

    assert "unlock-keychain" in str(exc_info.value)
    assert "hunter2" not in str(exc_info.value)
