"""
Runs Lighthouse against a URL in an isolated headless Chrome.

Chrome is started through selenium with a remote debugging port, and the
Lighthouse CLI attaches to that port. The browser is always shut down, on
success and on failure.
"""

import json
import re
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from aws_lambda_powertools import Logger
from selenium import webdriver
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service

from .exceptions import AuditError
from .model import AuditResult

# Flags that configure how this module drives Lighthouse rather than the audit.
RESERVED_FLAGS = ("output", "outputPath", "port")

# Base name of the files Lighthouse writes in the per-run temporary directory.
REPORT_STEM = "lighthouse"


def _kebab(name: str) -> str:
    return "".join(f"-{c.lower()}" if c.isupper() else c for c in name)


def flags_to_cli_args(flags: Mapping[str, Any]) -> List[str]:
    """
    Translates a Lighthouse flags object into CLI arguments.

    ``{"emulatedFormFactor": "mobile", "blockedUrlPatterns": ["a", "b"],
    "disableStorageReset": True}`` becomes ``--emulated-form-factor=mobile
    --blocked-url-patterns=a --blocked-url-patterns=b --disable-storage-reset``.
    False and None values are left out.
    """
    args: List[str] = []
    for name, value in flags.items():
        if name in RESERVED_FLAGS or value is None or value is False:
            continue
        option = f"--{_kebab(name)}"
        if value is True:
            args.append(option)
        elif isinstance(value, (list, tuple)):
            args.extend(f"{option}={item}" for item in value)
        elif isinstance(value, dict):
            args.append(f"{option}={json.dumps(value)}")
        else:
            args.append(f"{option}={value}")
    return args


def requested_outputs(flags: Mapping[str, Any]) -> List[str]:
    output = flags.get("output") or []
    if isinstance(output, str):
        output = [output]
    return list(output)


class LighthouseRunner:
    """
    Drives the browser and Lighthouse for a single URL.

    Args:
        logger: The Powertools Logger instance for structured logging.
        lighthouse_bin: The Lighthouse CLI executable.
        chromedriver_path: Optional chromedriver path; selenium resolves one
                           when omitted.
        chrome_binary: Optional Chrome/Chromium binary location.
    """

    def __init__(
        self,
        logger: Logger,
        lighthouse_bin: str = "lighthouse",
        chromedriver_path: Optional[str] = None,
        chrome_binary: Optional[str] = None,
    ):
        self.logger = logger
        self.lighthouse_bin = lighthouse_bin
        self.chromedriver_path = chromedriver_path
        self.chrome_binary = chrome_binary

    def build_driver(self) -> webdriver.Chrome:
        chrome_options = Options()
        chrome_options.add_argument("--headless")
        chrome_options.add_argument("--no-sandbox")
        chrome_options.add_argument("--disable-dev-shm-usage")
        chrome_options.add_argument("--remote-debugging-port=0")
        if self.chrome_binary:
            chrome_options.binary_location = self.chrome_binary

        if self.chromedriver_path:
            driver_service = Service(executable_path=self.chromedriver_path)
            return webdriver.Chrome(service=driver_service, options=chrome_options)
        return webdriver.Chrome(options=chrome_options)

    @staticmethod
    def debugging_port(driver: webdriver.Chrome) -> int:
        """Reads the remote debugging port chromedriver reports for the browser."""
        address = driver.capabilities.get("goog:chromeOptions", {}).get("debuggerAddress")
        if not address:
            raise AuditError("Browser did not report a remote debugging address.")
        return int(address.rsplit(":", 1)[1])

    def build_command(
        self, url: str, port: int, flags: Mapping[str, Any], outputs: Sequence[str], output_path: Path
    ) -> List[str]:
        command = [self.lighthouse_bin, url, f"--port={port}"]
        command.extend(f"--output={fmt}" for fmt in outputs)
        command.append(f"--output-path={output_path}")
        command.extend(flags_to_cli_args(flags))
        command.append("--quiet")
        return command

    @staticmethod
    def output_file(output_path: Path, outputs: Sequence[str], fmt: str) -> Path:
        # A single output is written to output_path itself. Several are written
        # side by side as <output_path>.report.<fmt>, after the CLI strips a
        # trailing 2-4 character extension from output_path.
        if len(outputs) == 1:
            return output_path
        stem = re.sub(r"\.\w{2,4}$", "", output_path.name)
        return output_path.with_name(f"{stem}.report.{fmt}")

    def run(self, subject_id: str, url: str, flags: Optional[Mapping[str, Any]] = None) -> AuditResult:
        """
        Audits `url` and returns the Lighthouse result with rendered artifacts.

        Args:
            subject_id: Catalog id of the subject, used in log lines.
            url: The page to audit.
            flags: Lighthouse flags; ``output`` lists the artifact formats.

        Returns:
            An AuditResult with `lhr` and `report` keyed by requested format.

        Raises:
            AuditError: If Lighthouse fails or its output cannot be read.
        """
        flags = dict(flags or {})
        formats = requested_outputs(flags)
        outputs = list(dict.fromkeys(formats + ["json"]))

        self.logger.info(f"{subject_id}: Starting browser for {url}")
        driver = self.build_driver()
        try:
            self.logger.info(f"{subject_id}: Browser started for {url}")
            port = self.debugging_port(driver)

            with tempfile.TemporaryDirectory(prefix="lighthouse-") as tmp:
                output_path = Path(tmp) / REPORT_STEM
                command = self.build_command(url, port, flags, outputs, output_path)
                self.logger.info(f"{subject_id}: Starting lighthouse for {url}", extra={"flags": flags})
                completed = subprocess.run(command, capture_output=True, text=True)
                if completed.returncode != 0:
                    raise AuditError(
                        f"Lighthouse exited with status {completed.returncode} for {url}",
                        context={"stderr": completed.stderr[-2000:]},
                    )
                self.logger.info(f"{subject_id}: Lighthouse done for {url}")

                report: Dict[str, str] = {}
                try:
                    for fmt in outputs:
                        report[fmt] = self.output_file(output_path, outputs, fmt).read_text(encoding="utf-8")
                    lhr = json.loads(report["json"])
                except (OSError, json.JSONDecodeError) as e:
                    raise AuditError(f"Could not read Lighthouse output for {url}: {e}") from e
        finally:
            driver.quit()
            self.logger.info(f"{subject_id}: Browser closed for {url}")

        return AuditResult(lhr=lhr, report={fmt: report[fmt] for fmt in formats})
