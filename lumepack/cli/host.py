from __future__ import annotations

from ._common import *  # noqa: F401,F403
from ..host import check_commands, host_is_apple_silicon


class DoctorCLI(_BaseCommand):
    """Check host prerequisites and list missing required tools."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        cls.cli(argv=argv, data=kwargs)
        if not host_is_apple_silicon():
            print("⚠️  lume requires macOS on Apple Silicon; builds will fail here.")
        missing, missing_opt = check_commands()
        if missing:
            print("❌ Missing required commands:", ", ".join(missing))
            print("💡 Install the lume CLI and make sure it is on PATH.")
            return 2
        if missing_opt:
            print("➖ Missing optional commands:", ", ".join(missing_opt))
        print("✅ Required host commands are present.")
        return 0
