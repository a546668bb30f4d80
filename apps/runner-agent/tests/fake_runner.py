"""
Stand-in runnable command for the tests.

    fake_runner.py [--list-fails | --list-garbage] <command> <input>
"""

import json
import subprocess
import sys
import time

COMMANDS = ["echo", "stderr", "fail", "sleep", "spawn", "orphan", "escape"]


def main(args: list[str]) -> int:
    *flags, command, payload = args

    if command == "list":
        if "--list-fails" in flags:
            sys.stderr.write("cannot enumerate\n")
            return 1
        if "--list-garbage" in flags:
            print("not json")
            return 0
        print(json.dumps(COMMANDS))
        return 0

    if command == "echo":
        sys.stdout.write(payload)
        return 0

    if command == "stderr":
        sys.stdout.write(payload)
        sys.stderr.write("line one\nline two\n")
        return 0

    if command == "fail":
        sys.stdout.write("partial result")
        sys.stderr.write("boom\n")
        return int(payload or 3)

    if command == "sleep":
        sys.stderr.write("sleeping\n")
        sys.stderr.flush()
        time.sleep(float(payload))
        print("woke up")
        return 0

    if command == "spawn":
        # The grandchild inherits our stdout/stderr pipes
        child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
        sys.stderr.write(f"{child.pid}\n")
        sys.stderr.flush()
        time.sleep(60)
        return 0

    if command in ("orphan", "escape"):
        # Leave a sleeper behind that holds our pipes, then exit cleanly.
        # "escape" also moves it out of our process group.
        sleeper = subprocess.Popen(
            [sys.executable, "-c", "import time; time.sleep(8)"],
            start_new_session=(command == "escape"),
        )
        with open(payload, "w") as fh:
            fh.write(str(sleeper.pid))
        time.sleep(0.3)
        sys.stdout.write("done early")
        return 0

    sys.stderr.write(f"unknown command {command}\n")
    return 2


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
