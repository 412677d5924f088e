"""Environment detection and the report-from gate."""

import os
from typing import Mapping, Optional, Sequence

from exception_notify.config import Settings

DEFAULT_ENVIRONMENT_VARIABLES = ("APP_ENV", "ENVIRONMENT")


class EnvironmentProvider:
    """
    Resolves the current environment name.

    The first non-empty variable of ``env_var_names`` wins, then
    ``settings.environment.current``, then ``"dev"``.
    """

    def __init__(
        self,
        settings: Settings,
        env_var_names: Sequence[str] = DEFAULT_ENVIRONMENT_VARIABLES,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.settings = settings
        self.env_var_names = tuple(env_var_names)
        self._environ = environ if environ is not None else os.environ

    def get_current_environment(self) -> str:
        for name in self.env_var_names:
            value = self._environ.get(name)
            if value:
                return value
        return self.settings.environment.current or "dev"

    def should_report(self, environment: Optional[str] = None) -> bool:
        """Return True if exceptions from ``environment`` (default: current) are reported."""
        return self.settings.environment.should_report(environment or self.get_current_environment())
