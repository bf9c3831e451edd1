from ucode.cli import run

run()
