import os

MIN_TOKEN_LENGTH = 8


class EnvCredentialProvider:
    """Reads the device API token from the environment on every call."""

    def __init__(self, env_var: str = "SIGNAGE_DEVICE_API_TOKEN") -> None:
        self._env_var = env_var

    def get_credentials(self) -> str | None:
        token = (os.getenv(self._env_var, "") or "").strip()
        if len(token) < MIN_TOKEN_LENGTH:
            return None
        return token

    def is_configured(self) -> bool:
        return self.get_credentials() is not None


class StaticCredentialProvider:
    def __init__(self, token: str | None) -> None:
        self._token = (token or "").strip()

    def get_credentials(self) -> str | None:
        if len(self._token) < MIN_TOKEN_LENGTH:
            return None
        return self._token

    def is_configured(self) -> bool:
        return self.get_credentials() is not None
