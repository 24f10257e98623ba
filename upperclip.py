#!/usr/bin/env python3
"""
upperclip.py - Run tagged-template capitalisation (and any other text
transform) over the clipboard or standard input.

Loads transform scripts from a folder, passes text through one transform or
a multi-step chain, and writes the result back to the clipboard, or prints
it when reading from stdin.

Features:
  - Single transforms or multi-step chains
  - Chain definitions loaded from transforms.ini
  - Per-transform config overrides via transforms.ini
  - Dry run mode (result is logged, clipboard left alone)
  - Clipboard watch loop, one-shot mode and stdin/stdout mode
  - Every run logged to upperclip.db

Usage:
    python upperclip.py [--script upper_template] [--transforms ./transforms]
                        [--stdin | --once | --watch] [--dry-run] [--poll 0.5]
    python upperclip.py --list
    python upperclip.py --history 20 [--tag err] [--session ID]
    python upperclip.py --runs 20 | --sessions

Transform script API:
    def transform(text: str) -> str: ...
    Module-level docstring used as the description.

transforms.ini format:
    [transform:upper_template]     # matches filename stem upper_template.py
    mode = first                   # sets module constant MODE

    [chain:greeting]
    description = Fill the template, then capitalise the opening letter
    steps = upper_template, capitalize_first
"""

import argparse
import configparser
import importlib.util
import sys
import time
import traceback
from datetime import datetime
from pathlib import Path

try:
    import pyperclip
except ImportError:
    print("Missing dependency: pip install pyperclip")
    sys.exit(1)

from run_log import RunLog

PREVIEW_CHARS = 80


# ─── INI loader ──────────────────────────────────────────────────────────────

def load_ini(folder: str) -> configparser.ConfigParser:
    """Load transforms.ini from the transforms folder if it exists."""
    cfg = configparser.ConfigParser()
    ini_path = Path(folder) / "transforms.ini"
    if ini_path.exists():
        cfg.read(ini_path, encoding="utf-8")
    return cfg


def get_transform_overrides(cfg: configparser.ConfigParser, stem: str) -> dict:
    """Return key/value overrides for a transform script from transforms.ini."""
    section = f"transform:{stem}"
    if cfg.has_section(section):
        return dict(cfg[section])
    return {}


def get_chains(cfg: configparser.ConfigParser) -> list:
    """
    Return chain definitions from transforms.ini.
    Each item: {name, path, description, fn, is_chain, steps: [str]}
    """
    chains = []
    for section in cfg.sections():
        if section.startswith("chain:"):
            name  = section[len("chain:"):]
            raw   = cfg.get(section, "steps", fallback="")
            chains.append({
                "name":        name,
                "path":        "",
                "description": cfg.get(section, "description", fallback=""),
                "fn":          None,
                "is_chain":    True,
                "steps":       [s.strip() for s in raw.split(",") if s.strip()],
            })
    return chains


# ─── Transform loader ─────────────────────────────────────────────────────────

def _coerce(value: str):
    # int, then float, else leave as string
    for cast in (int, float):
        try:
            return cast(value)
        except (ValueError, TypeError):
            pass
    return value


def load_transform(script_path: str, overrides: dict = None):
    """
    Dynamically load a transform script.
    Returns (transform_fn, resolved_path, description_str).

    Overrides are applied as upper-case module constants, so
    ``mode = first`` in transforms.ini sets ``MODE = "first"``.
    """
    path = Path(script_path).resolve()
    if not path.exists():
        raise FileNotFoundError(f"Script not found: {path}")

    spec   = importlib.util.spec_from_file_location(f"transform_{path.stem}", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    if not callable(getattr(module, "transform", None)):
        raise AttributeError("Script must define a 'transform(text) -> str' function")

    for key, value in (overrides or {}).items():
        setattr(module, key.upper(), _coerce(value))

    description = (
        (module.__doc__ or "").strip()
        or (module.transform.__doc__ or "").strip()
        or "No description."
    )
    short_desc = next(
        (ln.strip() for ln in description.splitlines() if ln.strip()), description
    )

    return module.transform, str(path), short_desc


# ─── Transform folder scanner ─────────────────────────────────────────────────

def scan_transforms(folder: str, cfg: configparser.ConfigParser) -> list:
    """
    Scan folder for .py transform scripts and merge in chain definitions from ini.
    Returns list of registry dicts sorted alphabetically (scripts first, chains appended).
    """
    results = []
    p = Path(folder)
    if not p.is_dir():
        return results

    for pyfile in sorted(p.glob("*.py")):
        if pyfile.name.startswith("_"):
            continue
        overrides = get_transform_overrides(cfg, pyfile.stem)
        try:
            fn, path, desc = load_transform(str(pyfile), overrides)
            results.append({
                "name":        pyfile.stem,
                "path":        path,
                "description": desc,
                "fn":          fn,
                "is_chain":    False,
                "steps":       [],
            })
        except Exception as exc:
            results.append({
                "name":        pyfile.stem,
                "path":        str(pyfile),
                "description": f"Load error: {exc}",
                "fn":          None,
                "is_chain":    False,
                "steps":       [],
            })

    results.extend(get_chains(cfg))
    return results


# ─── Chain runner ─────────────────────────────────────────────────────────────

def _preview(text: str) -> str:
    shown = text[:PREVIEW_CHARS].replace("\n", "↵")
    return f"{shown!r}{'…' if len(text) > PREVIEW_CHARS else ''}"


class ChainRunner:
    """Holds the transform registry and pipes text through the selected steps."""

    def __init__(self, transforms_folder: str, dry_run: bool = False,
                 db: RunLog = None, stream=None):
        self.transforms_folder = transforms_folder
        self.dry_run           = dry_run
        self.db                = db
        self.stream            = stream

        self.last_clip         = ""
        self.transform_count   = 0
        self.error_count       = 0

        self._registry: list   = []
        self.steps: list       = []
        self.target            = ""

        self.refresh()

    # ── Registry ──────────────────────────────────────────────────────────────

    @property
    def registry(self) -> list:
        return list(self._registry)

    def refresh(self):
        cfg = load_ini(self.transforms_folder)
        self._registry = scan_transforms(self.transforms_folder, cfg)

        good  = sum(1 for t in self._registry if not t["is_chain"] and t["fn"] is not None)
        bad   = sum(1 for t in self._registry if not t["is_chain"] and t["fn"] is None)
        nchai = sum(1 for t in self._registry if t["is_chain"])
        msg = f"Found {good} transform(s) in {self.transforms_folder}"
        if bad:
            msg += f", {bad} failed to load"
        if nchai:
            msg += f", {nchai} chain(s)"
        self.log(msg, "info" if not bad else "warn")

    def _find(self, name: str, chains: bool = True):
        return next(
            (t for t in self._registry
             if t["name"] == name and (chains or not t["is_chain"])),
            None,
        )

    def select(self, name: str) -> list:
        """
        Make *name* (a transform stem, a chain name or a script path) the
        active step list. Raises KeyError if nothing matches.
        """
        entry = self._find(name)
        if entry is None and name.endswith(".py"):
            entry = self._find_by_path(name)
        if entry is None:
            raise KeyError(name)

        if not entry["is_chain"]:
            self.steps = [entry]
            self.target = entry["name"]
            return self.steps

        steps = []
        for step_name in entry["steps"]:
            step = self._find(step_name, chains=False)
            if step is None:
                self.log(f"Chain step '{step_name}' not found in registry", "warn")
                continue
            steps.append(step)
        self.steps = steps
        self.target = entry["name"]
        self.log(
            f"Loaded chain '{entry['name']}': " + " → ".join(s["name"] for s in steps),
            "chain",
        )
        return self.steps

    def _find_by_path(self, script_path: str):
        path = Path(script_path).resolve()
        entry = next(
            (t for t in self._registry
             if not t["is_chain"] and Path(t["path"]).resolve() == path),
            None,
        )
        if entry is not None or not path.exists():
            return entry
        # A script outside the transforms folder
        fn, resolved, desc = load_transform(str(path))
        entry = {
            "name":        path.stem,
            "path":        resolved,
            "description": desc,
            "fn":          fn,
            "is_chain":    False,
            "steps":       [],
        }
        self._registry.append(entry)
        return entry

    # ── Logging ───────────────────────────────────────────────────────────────

    def log(self, message: str, tag: str = "info", transform_name: str = ""):
        ts = datetime.now().strftime("%H:%M:%S")
        print(f"[{ts}] {message}", file=self.stream or sys.stderr)
        if self.db is not None:
            self.db.log(message, tag, transform_name)

    # ── Chain execution ───────────────────────────────────────────────────────

    def run(self, text: str, source: str = "clipboard"):
        """
        Run *text* through the active steps. Returns the final text, or None
        when there is nothing to run or a step fails.
        """
        steps = self.steps
        if not steps:
            self.log("No transforms active — select a transform or chain", "warn")
            return None

        is_chain = len(steps) > 1
        chain_label = " → ".join(s["name"] for s in steps)

        if is_chain:
            self.log(f"▶ Chain [{chain_label}] via {source}", "chain")
        else:
            self.log(f"▶ [{steps[0]['name']}] via {source}", "info", steps[0]["name"])

        current = text
        for i, step in enumerate(steps):
            name = step["name"]
            if step["fn"] is None:
                self.log(f"  ✗ Step {i+1} [{name}] has no function (load error)", "err", name)
                self._fail(text, source, f"{name}: load error")
                return None

            if is_chain:
                self.log(f"  [{i+1}/{len(steps)}] {name}", "chain", name)
            self.log(f"   In:  {_preview(current)}", "preview", name)

            try:
                result = step["fn"](current)
            except Exception as exc:
                self.log(f"  ✗ Error in [{name}]: {exc}", "err", name)
                self.log(traceback.format_exc(), "err", name)
                self._fail(text, source, f"{name}: {exc}")
                return None

            if not isinstance(result, str):
                result = str(result)
            self.log(f"   Out: {_preview(result)}", "ok", name)
            current = result

        self._record(text, source, chars_out=len(current))
        if self.dry_run:
            self.log(f"  🔍 Dry run — {len(current)} chars, clipboard untouched", "warn")
        else:
            pyperclip.copy(current)
            self.last_clip = current
            self.log(f"  ✓ {len(current)} chars written to clipboard", "ok")

        self.transform_count += 1
        return current

    def _mode(self) -> str:
        # MODE constant of the first step that has one (e.g. upper_template)
        for step in self.steps:
            mode = getattr(step["fn"], "__globals__", {}).get("MODE")
            if mode is not None:
                return str(mode)
        return ""

    def _record(self, text: str, source: str, chars_out: int = None, error: str = ""):
        if self.db is None:
            return
        self.db.record_run(
            self.target,
            [s["name"] for s in self.steps],
            source,
            self._mode(),
            self.dry_run,
            len(text),
            chars_out,
            error,
        )

    def _fail(self, text: str, source: str, error: str):
        self.error_count += 1
        self._record(text, source, error=error)

    # ── Polling ───────────────────────────────────────────────────────────────

    def _reseed_clipboard(self):
        try:
            self.last_clip = pyperclip.paste()
        except pyperclip.PyperclipException as exc:
            self.log(f"Clipboard read error: {exc}", "warn")

    def watch(self, poll_interval: float = 0.5, max_polls: int = None):
        """Poll the clipboard and run the chain on every change."""
        self.log(f"Watching clipboard every {poll_interval}s (Ctrl+C to stop)", "info")
        self._reseed_clipboard()
        polls = 0
        while max_polls is None or polls < max_polls:
            polls += 1
            try:
                current = pyperclip.paste()
            except pyperclip.PyperclipException as exc:
                self.log(f"Clipboard read error: {exc}", "warn")
            else:
                if current and current != self.last_clip:
                    self.last_clip = current
                    self.run(current, source="clipboard change")
            time.sleep(poll_interval)


# ─── Entry point ──────────────────────────────────────────────────────────────

def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="upperclip",
        description="Capitalise tagged-template values (and run other text "
                    "transforms) on the clipboard or stdin.",
    )
    parser.add_argument("--script", "-s", default="upper_template",
                        help="Transform stem, chain name or script path "
                             "(default: upper_template).")
    parser.add_argument("--transforms", "-t",
                        default=str(Path(__file__).parent / "transforms"),
                        help="Folder to scan (default: <script dir>/transforms).")
    parser.add_argument("--poll", "-p", type=float, default=0.5,
                        help="Poll interval in seconds for --watch (default: 0.5).")
    parser.add_argument("--dry-run", "-n", action="store_true",
                        help="Log the result instead of writing the clipboard.")
    parser.add_argument("--db-dir", default=str(Path(__file__).parent),
                        help="Folder holding the run log (default: <script dir>).")
    parser.add_argument("--no-db", action="store_true",
                        help="Do not write the run log.")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--stdin", action="store_true",
                      help="Read stdin, print the result to stdout.")
    mode.add_argument("--once", action="store_true",
                      help="Transform the current clipboard once and exit.")
    mode.add_argument("--watch", action="store_true",
                      help="Watch the clipboard until interrupted (default).")
    mode.add_argument("--list", action="store_true",
                      help="List available transforms and chains.")
    mode.add_argument("--history", type=int, metavar="N",
                      help="Print the last N run log lines.")
    mode.add_argument("--runs", type=int, metavar="N",
                      help="Print the last N runs (target, source, sizes, status).")
    mode.add_argument("--sessions", action="store_true",
                      help="Print recent sessions with run and error counts.")

    parser.add_argument("--tag", default=None,
                        help="With --history: only lines with this tag (e.g. err).")
    parser.add_argument("--session", default=None, metavar="ID",
                        help="With --history or --runs: only this session.")
    return parser.parse_args(argv)


def _print_history(db: RunLog, limit: int, tag: str = None, session_id: str = None):
    for entry in db.entries(limit=limit, tag=tag, session_id=session_id):
        name = f" [{entry['transform_name']}]" if entry["transform_name"] else ""
        print(f"{entry['timestamp'][:19]} {entry['session_id']} "
              f"{entry['tag']:<7}{name} {entry['message']}")


def _print_runs(db: RunLog, limit: int, session_id: str = None):
    for run in db.runs(limit=limit, session_id=session_id):
        out = "-" if run["chars_out"] is None else run["chars_out"]
        mode = f" mode={run['mode']}" if run["mode"] else ""
        dry = " dry-run" if run["dry_run"] else ""
        line = (f"{run['timestamp'][:19]} {run['session_id']} {run['status']:<3} "
                f"{run['target']} [{run['steps']}] via {run['source']}{mode}{dry} "
                f"{run['chars_in']}→{out} chars")
        if run["error"]:
            line += f" ({run['error']})"
        print(line)


def _print_sessions(db: RunLog):
    for session in db.sessions():
        print(f"{session['id']} {session['started_at'][:19]} "
              f"{session['run_count']} run(s) {session['error_count']} error(s) "
              f"{session['transforms_folder']}")


def _query(args) -> int:
    if args.no_db:
        print("--history/--runs/--sessions need the run log; drop --no-db",
              file=sys.stderr)
        return 1
    db = RunLog(args.db_dir)
    if args.history is not None:
        _print_history(db, args.history, args.tag, args.session)
    elif args.runs is not None:
        _print_runs(db, args.runs, args.session)
    else:
        _print_sessions(db)
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)

    if args.history is not None or args.runs is not None or args.sessions:
        return _query(args)

    db = None if args.no_db else RunLog(args.db_dir, args.transforms)
    try:
        runner = ChainRunner(args.transforms, dry_run=args.dry_run or args.stdin, db=db)

        if args.list:
            for entry in runner.registry:
                kind = "chain" if entry["is_chain"] else "script"
                print(f"{entry['name']:<24} {kind:<7} {entry['description']}")
            return 0

        try:
            runner.select(args.script)
        except KeyError:
            runner.log(f"No transform or chain named '{args.script}'", "err")
            return 1

        if args.stdin:
            result = runner.run(sys.stdin.read(), source="stdin")
            if result is None:
                return 1
            sys.stdout.write(result)
            return 0

        if args.once:
            return 0 if runner.run(pyperclip.paste(), source="clipboard") is not None else 1

        try:
            runner.watch(args.poll)
        except KeyboardInterrupt:
            runner.log(
                f"Stopped after {runner.transform_count} run(s), "
                f"{runner.error_count} error(s)", "info"
            )
        return 0
    finally:
        if db is not None:
            db.flush()
            db.stop()


if __name__ == "__main__":
    sys.exit(main())
