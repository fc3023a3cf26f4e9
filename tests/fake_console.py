#!/usr/bin/env python3
"""Scripted stand-in for a QEMU serial console.

Usage: fake_console.py TRANSCRIPT.json

The transcript is {"entries": [{"prompt": str, "lines": int}, ...],
"final_output": str, "exit_code": int, "stall": bool, "pid_file": str}.
For each entry the fake prints the prompt, then reads that many lines
from stdin. After the last entry it prints final_output and exits with
exit_code, or sleeps forever when stall is true. pid_file, if given,
receives the fake's pid at startup.
"""

import json
import os
import sys
import time


def main(argv):
    with open(argv[1], encoding='utf-8') as f:
        transcript = json.load(f)

    if transcript.get('pid_file'):
        with open(transcript['pid_file'], 'w', encoding='utf-8') as f:
            f.write(str(os.getpid()))

    for entry in transcript.get('entries', []):
        sys.stdout.write(entry.get('prompt', ''))
        sys.stdout.flush()
        for _ in range(entry.get('lines', 0)):
            if not sys.stdin.readline():
                return 3

    sys.stdout.write(transcript.get('final_output', ''))
    sys.stdout.flush()

    if transcript.get('stall'):
        while True:
            time.sleep(1)
    return transcript.get('exit_code', 0)


if __name__ == '__main__':
    sys.exit(main(sys.argv))
