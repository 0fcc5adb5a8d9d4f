"""Allow ``python -m cpdeploy``."""

from .deploy import run

if __name__ == "__main__":
    run()
