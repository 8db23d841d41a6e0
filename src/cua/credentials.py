"""
credentials.py — Provider credential loading.

Each provider is enabled by its own API key.  Keys are looked up in the
environment first (a local ``.env`` is honoured via python-dotenv), then in
systemd-creds encrypted files under ``~/.config/cua``:

    gemini-api-key.cred
    openai-api-key.cred

Decrypted values are held in memory only.  At least one key must be
found, otherwise ``ConfigurationError`` is raised.
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigurationError

#: Environment variables checked for each provider, in order.
ENV_VARS: dict[str, tuple[str, ...]] = {
    "gemini": ("GEMINI_API_KEY", "API_KEY"),
    "openai": ("OPENAI_API_KEY",),
}

#: systemd-creds credential names for each provider.
CRED_NAMES: dict[str, str] = {
    "gemini": "gemini-api-key",
    "openai": "openai-api-key",
}


@dataclass
class Credentials:
    """Container for provider API keys; ``None`` means disabled."""

    gemini_api_key: str | None = None
    openai_api_key: str | None = None

    @property
    def enabled_providers(self) -> list[str]:
        enabled = []
        if self.gemini_api_key:
            enabled.append("gemini")
        if self.openai_api_key:
            enabled.append("openai")
        return enabled


class CredentialLoader:
    """
    Resolve API keys from the environment or systemd-creds files.

    Usage:
        loader = CredentialLoader()
        creds = loader.load()
        provider = GeminiProvider(api_key=creds.gemini_api_key)
    """

    def __init__(
        self,
        cred_dir: Path | None = None,
        environ: dict[str, str] | None = None,
        use_dotenv: bool = True,
    ):
        """
        Initialize the credential loader.

        Args:
            cred_dir: Directory containing .cred files (default: ~/.config/cua)
            environ: Mapping to read variables from (default: os.environ)
            use_dotenv: Load ``.env`` from the working directory first
        """
        self.cred_dir = cred_dir or Path.home() / ".config" / "cua"
        self.environ = environ
        self.use_dotenv = use_dotenv
        self.logger = logging.getLogger(__name__)

    def load(self) -> Credentials:
        """
        Resolve one key per provider.

        Returns:
            Credentials with every key that could be found.

        Raises:
            ConfigurationError: If no provider key is available at all.
        """
        if self.use_dotenv and self.environ is None:
            load_dotenv(override=False)
        env = os.environ if self.environ is None else self.environ

        creds = Credentials(
            gemini_api_key=self._resolve("gemini", env),
            openai_api_key=self._resolve("openai", env),
        )

        if not creds.enabled_providers:
            raise ConfigurationError(
                "No API keys found. Please set GEMINI_API_KEY (or API_KEY) "
                "for Gemini and/or OPENAI_API_KEY for OpenAI, or provide\n"
                f"    {self.cred_dir}/{CRED_NAMES['gemini']}.cred\n"
                f"    {self.cred_dir}/{CRED_NAMES['openai']}.cred"
            )

        self.logger.info("Enabled providers: %s", ", ".join(creds.enabled_providers))
        return creds

    def _resolve(self, provider: str, env) -> str | None:
        for var in ENV_VARS[provider]:
            value = (env.get(var) or "").strip()
            if value:
                return value

        cred_file = self.cred_dir / f"{CRED_NAMES[provider]}.cred"
        if not cred_file.exists():
            return None
        self.logger.info("Loading %s key from systemd-creds", provider)
        return self._decrypt_credential(CRED_NAMES[provider])

    def _decrypt_credential(self, name: str) -> str:
        """
        Decrypt a single systemd-creds credential.

        Args:
            name: Credential name (e.g., "openai-api-key")

        Returns:
            Decrypted credential value (plaintext string).

        Raises:
            ConfigurationError: If systemd-creds is missing or decryption fails.
        """
        cred_file = self.cred_dir / f"{name}.cred"

        try:
            result = subprocess.run(
                [
                    "systemd-creds",
                    "decrypt",
                    "--user",
                    "--name",
                    name,
                    str(cred_file),
                    "-",  # Output to stdout
                ],
                check=True,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError:
            raise ConfigurationError(
                "systemd-creds command not found.\n"
                "  This requires systemd ≥ 256.\n"
                "  Check your systemd version: systemctl --version"
            ) from None
        except subprocess.CalledProcessError as e:
            raise ConfigurationError(f"Failed to decrypt credential: {e}") from e

        credential = result.stdout.strip()

        if not credential:
            raise ConfigurationError(f"Decrypted credential '{name}' is empty")

        return credential
