"""
jira-worklog-importer core
- Reads a DailyTimeApp CSV export (activity, timeInMinutes) and turns it into Jira worklogs.
- Date rows (empty activity, DD/MM/YY in the time column) set the date for the rows that follow.
- Whole batch is validated up front; nothing is sent if a single entry is incomplete.
- Optional confirmation prompt (--quiet skips it), then parallel POSTs to issue/<KEY>/worklog.

Configuration comes from config.ini ([jira] section) with JIRA_ISSUE / JIRA_TOKEN as fallback.
"""

import argparse
import configparser
import os
import re
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import pandas as pd
import requests
import urllib3
from tqdm import tqdm

COLUMNS = ["activity", "timeInMinutes"]
ISSUE_RE = re.compile(r"^([A-Z]{2,10}-\d{1,5})(.*)", re.DOTALL)
DATE_RE = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{2})\s*$")
MINUTES_RE = re.compile(r"^\d+(\.\d+)?$")
STARTED_TIME = "T18:00:00.201+0000"
CONFIRM_QUESTION = "Does this look alright?"


class WorklogError(Exception):
    """Base class for errors that stop the import pipeline."""


class ValidationError(WorklogError):
    """One or more entries are missing data."""


class CancellationError(WorklogError):
    """The user declined the confirmation prompt."""


class SubmissionError(WorklogError):
    """At least one worklog could not be posted to Jira."""


class CsvParseError(Exception):
    """The input file is not a well-formed two column CSV."""


@dataclass(frozen=True)
class WorkLogEntry:
    date: Optional[str]
    issue_number: Optional[str]
    description: str
    time_in_minutes: str


def app_dir() -> str:
    """Return the application directory.

    When running as a PyInstaller-frozen executable, this points to the
    directory of the bundled executable. Otherwise, it returns the directory
    of this source file.
    """
    if getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS'):
        return os.path.dirname(sys.executable)
    return os.path.dirname(os.path.abspath(__file__))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for the importer.

    Returns:
        argparse.Namespace: Parsed command-line options provided via CLI.
    """
    default_cfg = os.path.join(app_dir(), "config.ini")

    p = argparse.ArgumentParser(
        description="Submits a DailyTimeApp CSV export as Jira worklogs.",
        usage="%(prog)s dailytimeapp-export.csv [--quiet]",
    )
    p.add_argument("file", help="CSV export to import")
    p.add_argument("-q", "--quiet", action="store_true", default=False, help="Don't ask for confirmation")
    p.add_argument("-d", "--delimiter", default=",", help="Delimiter used for the CSV (default=',')")
    p.add_argument("--config", default=default_cfg, help=f"Path to config.ini (default: {default_cfg})")
    p.add_argument("--verbose", action="store_true", help="Detailed output")
    p.add_argument("--timeout", type=int, default=120, help="Per-request timeout in seconds (default=120)")
    p.add_argument("--insecure", action="store_true", help="DISABLES SSL verification (NOT RECOMMENDED)")
    return p.parse_args(argv)


def vprint(verbose: bool, *args, **kwargs):
    """Print arguments only when verbose is True."""
    if verbose:
        print(*args, **kwargs)


def read_config(path: str) -> Dict[str, Any]:
    """Read configuration from an INI file, falling back to the environment.

    The [jira] section is optional; issue_url and token may come from
    JIRA_ISSUE and JIRA_TOKEN instead. Exits with status 2 when either is
    still missing.

    Args:
        path: Path to config.ini.

    Returns:
        Dict[str, Any]: Normalized configuration values required to run.
    """
    cp = configparser.ConfigParser()
    cp.read(path, encoding="utf-8")
    sec = cp["jira"] if "jira" in cp else {}

    issue_url = (sec.get("issue_url", "").strip() or os.environ.get("JIRA_ISSUE", "")).strip()
    token = (sec.get("token", "").strip() or os.environ.get("JIRA_TOKEN", "")).strip()
    if not (issue_url and token):
        print("ERRO: issue_url and token are required (config.ini or JIRA_ISSUE / JIRA_TOKEN).", file=sys.stderr)
        sys.exit(2)

    return {
        "issue_url": issue_url,
        "token": token,
        "verify_ssl": sec.get("verify_ssl", "true").strip().lower() in ("1", "true", "yes", "on"),
        "ca_bundle": sec.get("ca_bundle", "").strip(),
        "http_proxy": sec.get("http_proxy", "").strip(),
        "https_proxy": sec.get("https_proxy", "").strip(),
    }


def read_records(path: str, delimiter: str = ",") -> List[Dict[str, str]]:
    """Read the CSV export into a list of {activity, timeInMinutes} rows.

    Lines starting with '#' are comments. Every value is kept as text and
    empty fields stay empty strings.

    Raises:
        CsvParseError: when the file can't be read or a row doesn't have exactly two fields.
    """
    try:
        df = pd.read_csv(
            path,
            sep=delimiter,
            header=None,
            dtype=str,
            comment="#",
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, OSError, UnicodeDecodeError) as e:
        raise CsvParseError(f"Could not parse {path}: {e}") from e

    if df.shape[1] != len(COLUMNS):
        raise CsvParseError(f"Could not parse {path}: expected {len(COLUMNS)} columns, found {df.shape[1]}")
    short = df.isna().any(axis=1)
    if short.any():
        row = int(short.values.argmax()) + 1
        raise CsvParseError(f"Could not parse {path}: row {row} has fewer than {len(COLUMNS)} fields")
    df.columns = COLUMNS
    return df.to_dict("records")


def convert_date(date: str) -> str:
    """Convert '27/01/16' to '2016-01-27'.

    Raises:
        CsvParseError: when the date row isn't DD/MM/YY.
    """
    m = DATE_RE.match(date)
    if not m:
        raise CsvParseError(f"Malformed date row: {date!r} (expected DD/MM/YY)")
    day, month, year = m.groups()
    return "-".join(["20" + year, month, day])


def parse_issue(text: str) -> Tuple[Optional[str], str]:
    """Split a Jira issue number off the start of an activity label.

    An issue number is 2-10 capital letters, a minus and up to five digits,
    e.g. XXX-12345. Without one the whole text is returned as description.
    """
    m = ISSUE_RE.match(text)
    if not m:
        return None, text
    return m.group(1), m.group(2).strip()


def is_date_row(record: Dict[str, str]) -> bool:
    return not record.get("activity") and "/" in (record.get("timeInMinutes") or "")


def parse_record(record: Dict[str, str], current_date: Optional[str]) -> Tuple[Optional[str], Optional[WorkLogEntry]]:
    """Parse one CSV row given the date in effect.

    Returns the (possibly updated) current date and the entry for the row,
    or None for date rows.
    """
    if is_date_row(record):
        return convert_date(record["timeInMinutes"]), None

    number, description = parse_issue(record.get("activity") or "")
    entry = WorkLogEntry(
        date=current_date,
        issue_number=number,
        description=description,
        time_in_minutes=(record.get("timeInMinutes") or "").strip(),
    )
    return current_date, entry


def parse_records(records: Iterable[Dict[str, str]]) -> List[WorkLogEntry]:
    """Parse all rows in file order; each date row applies until the next one."""
    current_date: Optional[str] = None
    entries: List[WorkLogEntry] = []
    for record in records:
        current_date, entry = parse_record(record, current_date)
        if entry is not None:
            entries.append(entry)
    return entries


def minutes_of(entry: WorkLogEntry) -> Optional[float]:
    """Numeric value of time_in_minutes, or None if it isn't a number."""
    if not MINUTES_RE.match(entry.time_in_minutes or ""):
        return None
    return float(entry.time_in_minutes)


def is_valid(entry: WorkLogEntry) -> bool:
    minutes = minutes_of(entry)
    return (
        minutes is not None
        and minutes > 0
        and entry.issue_number is not None
        and bool(entry.description)
        and entry.date is not None
    )


def missing_info(entries: Iterable[WorkLogEntry]) -> List[str]:
    """Return '<issue> <description>' for every entry missing data."""
    return [f"{e.issue_number} {e.description}" for e in entries if not is_valid(e)]


def check_worklog(entries: List[WorkLogEntry]) -> List[WorkLogEntry]:
    """Check the worklog for mistakes.

    Raises:
        ValidationError: listing every incomplete entry, one per line.

    Returns:
        List[WorkLogEntry]: The same entries, untouched.
    """
    info = missing_info(entries)
    if info:
        raise ValidationError("Missing data for: \n" + "\n".join(info))
    return entries


def dump_worklog(entries: List[WorkLogEntry], out=None):
    """Print the worklog as tab-separated lines."""
    out = out or sys.stdout
    print(f"{len(entries)} entries:", file=out)
    for e in entries:
        print("\t".join([str(e.issue_number), f"{e.time_in_minutes} min", e.description]), file=out)


def prompt_confirm(question: str) -> bool:
    """Ask a yes/no question on the terminal. Empty answer means yes."""
    while True:
        try:
            answer = input(f"{question} [Y/n] ").strip().lower()
        except EOFError:
            return False
        if answer in ("", "y", "yes"):
            return True
        if answer in ("n", "no"):
            return False


def ask_for_confirmation(entries: List[WorkLogEntry], quiet: bool,
                         confirm: Callable[[str], bool] = prompt_confirm, out=None) -> List[WorkLogEntry]:
    """Let the user check the worklog before anything is sent.

    Raises:
        CancellationError: when the user answers no.
    """
    if quiet:
        return entries

    dump_worklog(entries, out)
    if not confirm(CONFIRM_QUESTION):
        raise CancellationError("Canceled")
    return entries


def make_session(token: str, verify: Optional[bool] = True, ca_bundle: Optional[str] = "",
                 http_proxy: str = "", https_proxy: str = "") -> requests.Session:
    """Create a configured requests.Session for the Jira worklog API.

    The token is sent as-is in a Basic Authorization header, so it must
    already be the base64 encoded 'user:password' pair.

    Args:
        token: Pre-encoded Basic credential.
        verify: Whether to verify SSL certs (ignored if ca_bundle provided).
        ca_bundle: Path to CA bundle to use for SSL verification.
        http_proxy: HTTP proxy URL.
        https_proxy: HTTPS proxy URL.

    Returns:
        requests.Session: Configured session instance.
    """
    s = requests.Session()
    s.headers.update({
        "Authorization": f"Basic {token}",
        "Accept": "application/json",
        "Content-Type": "application/json",
    })
    if http_proxy or https_proxy:
        proxies = {}
        if http_proxy:
            proxies["http"] = http_proxy
        if https_proxy:
            proxies["https"] = https_proxy
        s.proxies.update(proxies)
    if ca_bundle:
        s.verify = ca_bundle
    else:
        s.verify = verify
    return s


def worklog_url(issue_url: str, issue_number: str) -> str:
    return f"{issue_url}{issue_number}/worklog"


def worklog_payload(entry: WorkLogEntry) -> Dict[str, str]:
    return {
        "started": f"{entry.date}{STARTED_TIME}",
        "timeSpent": f"{entry.time_in_minutes}m",
        "comment": entry.description,
    }


def post_worklog(session: requests.Session, issue_url: str, entry: WorkLogEntry, timeout: int = 120,
                 verbose: bool = False) -> requests.Response:
    """POST a single worklog to Jira. Raises requests.HTTPError on a non-2xx answer."""
    url = worklog_url(issue_url, entry.issue_number)
    vprint(verbose, "POST", url)
    r = session.post(url, json=worklog_payload(entry), timeout=timeout)
    r.raise_for_status()
    return r


def submit_to_jira(entries: List[WorkLogEntry], issue_url: str, session_factory: Callable[[], requests.Session],
                   timeout: int = 120, verbose: bool = False) -> int:
    """Post every worklog at once and wait for all of them.

    Args:
        entries: Validated worklog entries.
        issue_url: Jira issue endpoint prefix, e.g. https://x.atlassian.net/rest/api/2/issue/
        session_factory: Callable that returns a configured requests.Session.
        timeout: Per-request timeout seconds.
        verbose: Whether to log details.

    Raises:
        SubmissionError: if any request failed, after all of them settled.

    Returns:
        int: Number of transferred entries.
    """
    print("Sending to Jira...")
    errors: List[Exception] = []
    done = 0
    with ThreadPoolExecutor(max_workers=max(1, len(entries))) as executor:
        futures = [
            executor.submit(post_worklog, session_factory(), issue_url, entry, timeout, verbose)
            for entry in entries
        ]
        with tqdm(total=len(futures), desc="Sending worklogs", unit="entry") as pbar:
            for fut in as_completed(futures):
                try:
                    fut.result()
                    done += 1
                except Exception as e:
                    errors.append(e)
                finally:
                    pbar.update(1)

    if errors:
        raise SubmissionError(f"{len(errors)} of {len(entries)} worklogs failed: {errors[0]}")
    print(f"Transferred {done} entries.")
    return done


def main(argv: Optional[List[str]] = None):
    """Program entry point: read, parse, validate, confirm and submit."""
    args = parse_args(argv)
    cfg = read_config(args.config)
    verbose = args.verbose

    verify_val = False if args.insecure else bool(cfg.get("verify_ssl", True))
    ca_bundle = cfg.get("ca_bundle", "")
    if not verify_val and not ca_bundle:
        sys.stderr.write("WARNING: SSL certificate verification is DISABLED. Use only for testing.\n")
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    try:
        entries = parse_records(read_records(args.file, args.delimiter))
    except CsvParseError as e:
        print(f"ERRO: {e}", file=sys.stderr)
        sys.exit(3)

    vprint(verbose, f"Read {len(entries)} entries from {args.file}")

    def session_factory():
        """Factory to create a configured requests.Session for concurrent calls."""
        return make_session(cfg["token"], verify=verify_val, ca_bundle=ca_bundle,
                            http_proxy=cfg.get("http_proxy", ""), https_proxy=cfg.get("https_proxy", ""))

    try:
        check_worklog(entries)
        ask_for_confirmation(entries, args.quiet)
        submit_to_jira(entries, cfg["issue_url"], session_factory, timeout=args.timeout, verbose=verbose)
    except CancellationError as e:
        print(e)
    except WorklogError as e:
        print(e, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
