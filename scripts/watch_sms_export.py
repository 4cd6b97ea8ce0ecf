import hashlib
import os
import subprocess
import sys
import time


def _resolve_config_path() -> str:
    explicit = os.environ.get("CONFIG_PATH")
    if explicit:
        return explicit
    for candidate in ("/app/config.yaml", "config.yaml"):
        if os.path.exists(candidate):
            return candidate
    return "config.yaml"


def _export_signature(export_path: str) -> str:
    try:
        st = os.stat(export_path)
    except FileNotFoundError:
        return ""
    entry = f"{os.path.abspath(export_path)}:{st.st_mtime_ns}:{st.st_size}"
    return hashlib.sha1(entry.encode("utf-8")).hexdigest()


def _run_backfill(export_path: str, db_path: str) -> None:
    cmd = [
        "pesaledger",
        "--config",
        _resolve_config_path(),
        "--db",
        db_path,
    ]
    env_file = os.environ.get("ENV_FILE")
    if env_file:
        cmd.extend(["--env-file", env_file])
    cmd.extend(["backfill", "--file", export_path])

    result = subprocess.run(cmd, check=False)
    if result.returncode != 0:
        raise RuntimeError(f"pesaledger backfill failed with exit code {result.returncode}")


def main() -> int:
    export_path = os.environ.get("SMS_EXPORT", "/data/sms.csv")
    db_path = os.environ.get("DB_PATH", "/data/pesaledger.db")
    poll_seconds = float(os.environ.get("POLL_SECONDS", "30"))

    if not os.path.isdir(os.path.dirname(os.path.abspath(export_path))):
        print(f"Export directory not found for: {export_path}", file=sys.stderr)
        return 1

    last_sig = None
    while True:
        try:
            sig = _export_signature(export_path)
            if sig and sig != last_sig:
                print("Detected a new SMS export. Catching up...", flush=True)
                _run_backfill(export_path, db_path)
                last_sig = sig
                print("Catch-up complete.", flush=True)
        except Exception as exc:
            print(f"Catch-up error: {exc}", file=sys.stderr)
        time.sleep(poll_seconds)


if __name__ == "__main__":
    raise SystemExit(main())
