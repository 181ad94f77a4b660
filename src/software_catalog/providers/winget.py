"""
Windows Package Manager provider.

Runs the local winget CLI:
    winget search "<name>" --accept-source-agreements
    winget show --id <package id> --exact --accept-source-agreements

On machines without winget every lookup returns None.
"""

import asyncio
import re
import shutil
from dataclasses import dataclass
from typing import Any

from software_catalog.config import Settings
from software_catalog.providers.base import (
    BaseProvider,
    MetadataResult,
    Partition,
    ProviderError,
)

TRAILING_VERSION = re.compile(r"\s+v?\d+(\.\d+)+\s*$", re.IGNORECASE)
ARCH_SUFFIX = re.compile(r"\s*[\(\[]?\s*(x64|x86|64-bit|32-bit)\s*[\)\]]?\s*$", re.IGNORECASE)

SEARCH_COLUMNS = ("Name", "Id", "Version")


def clean_software_name(name: str) -> str:
    """
    Drop a trailing version number and architecture suffix.

    Example:
        >>> clean_software_name("7-Zip 23.01 (x64)")
        '7-Zip'
    """
    cleaned = name.strip()
    previous = None
    while previous != cleaned:
        previous = cleaned
        cleaned = ARCH_SUFFIX.sub("", cleaned).strip()
        cleaned = TRAILING_VERSION.sub("", cleaned).strip()
    return cleaned or name.strip()


def match_confidence(found: str, requested: str) -> float:
    """1.0 for an exact match, 0.8 when one name contains the other, else 0.6."""
    a, b = found.strip().lower(), requested.strip().lower()
    if a == b:
        return 1.0
    if a in b or b in a:
        return 0.8
    return 0.6


@dataclass(frozen=True)
class WingetPackage:
    """One row of `winget search` output."""

    name: str
    package_id: str
    version: str | None = None


def parse_search_output(output: str) -> list[WingetPackage]:
    """
    Parse the fixed-width table printed by `winget search`.

    Column boundaries are taken from the header line so that names
    containing spaces survive.
    """
    lines = [line.rstrip() for line in output.splitlines()]
    header_index = next(
        (
            i
            for i, line in enumerate(lines)
            if all(re.search(rf"\b{col}\b", line) for col in SEARCH_COLUMNS)
        ),
        None,
    )
    if header_index is None:
        return []

    header = lines[header_index]
    starts = [re.search(rf"\b{col}\b", header).start() for col in SEARCH_COLUMNS]  # type: ignore[union-attr]
    source_match = re.search(r"\b(Match|Source)\b", header)
    end_of_version = source_match.start() if source_match else None

    packages: list[WingetPackage] = []
    for line in lines[header_index + 1 :]:
        if not line.strip() or set(line.strip()) <= {"-"}:
            continue
        name = line[starts[0] : starts[1]].strip()
        package_id = line[starts[1] : starts[2]].strip()
        version = line[starts[2] : end_of_version].strip() if len(line) > starts[2] else ""
        if name and package_id:
            packages.append(WingetPackage(name, package_id, version.split()[0] if version else None))
    return packages


def parse_show_output(output: str) -> dict[str, str]:
    """Key/value pairs of interest from `winget show`."""
    wanted = {"publisher", "description", "homepage", "version", "publisher url", "license"}
    details: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip().lower()
        if key in wanted and value.strip() and key not in details:
            details[key] = value.strip()
    return details


class WingetProvider(BaseProvider):
    """
    Software metadata from the local winget CLI.

    Confidence: 1.0 exact name, 0.8 containment, 0.6 otherwise.
    """

    name = "Winget"
    priority = 1
    min_confidence = 0.6
    partition = Partition.SOFTWARE

    def __init__(self, settings: Settings | None = None, **kwargs: Any) -> None:
        super().__init__(settings, **kwargs)
        self._executable = self._settings.providers.winget_executable

    async def _run(self, *args: str) -> str | None:
        """Run winget and return stdout, or None when the CLI is missing or fails."""
        executable = shutil.which(self._executable)
        if executable is None:
            self._logger.debug("winget CLI not found", executable=self._executable)
            return None

        process = await asyncio.create_subprocess_exec(
            executable,
            *args,
            "--accept-source-agreements",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            raise

        if process.returncode != 0:
            self._logger.debug(
                "winget exited with error",
                returncode=process.returncode,
                stderr=stderr.decode("utf-8", errors="replace")[:200],
            )
            return None
        return stdout.decode("utf-8", errors="replace")

    async def _search(self, name: str) -> MetadataResult | None:
        return await self._lookup(clean_software_name(name), publisher=None)

    async def _search_with_publisher(self, name: str, publisher: str) -> MetadataResult | None:
        return await self._lookup(clean_software_name(name), publisher=publisher)

    async def _lookup(self, name: str, publisher: str | None) -> MetadataResult | None:
        output = await self._run("search", name)
        if not output:
            return None

        packages = parse_search_output(output)
        if not packages:
            return None

        package = packages[0]
        if publisher:
            # Package ids are "<Publisher>.<Product>"; prefer rows from the requested publisher
            prefix = publisher.split()[0].lower()
            package = next(
                (p for p in packages if p.package_id.lower().startswith(prefix)),
                package,
            )

        additional = {"package_id": package.package_id}
        if package.version:
            additional["version"] = package.version

        result = MetadataResult(
            source=self.name,
            confidence=match_confidence(package.name, name),
            name=package.name,
            additional_data=additional,
        )

        return await self._with_details(package, result)

    async def _with_details(self, package: WingetPackage, result: MetadataResult) -> MetadataResult:
        try:
            output = await self._run("show", "--id", package.package_id, "--exact")
        except (OSError, ProviderError) as e:
            self._logger.warning("winget show failed", package_id=package.package_id, error=str(e))
            return result
        if not output:
            return result

        details = parse_show_output(output)
        update: dict[str, Any] = {}
        if "publisher" in details:
            update["publisher"] = details["publisher"]
        if "description" in details:
            update["description"] = details["description"]
        if "homepage" in details:
            update["website_url"] = details["homepage"]
        if "version" in details:
            update["additional_data"] = {**result.additional_data, "latest_version": details["version"]}
        return result.model_copy(update=update)
