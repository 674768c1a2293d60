"""User-level settings and instructions."""
from __future__ import annotations

import asyncio
from typing import Any, Optional

from ccsm.config import Settings
from ccsm.services.claude_files import read_json_mapping, read_text_or_none


class UserDataRepository:
    def __init__(self, settings: Settings):
        self.settings = settings

    async def get_settings(self) -> Optional[dict[str, Any]]:
        return await asyncio.to_thread(read_json_mapping, self.settings.settings_file)

    async def get_claude_md(self) -> Optional[str]:
        return await asyncio.to_thread(read_text_or_none, self.settings.user_claude_md)
