"""Run the pushdeploy agent with ``python -m pushdeploy``."""

from pushdeploy.main import run

if __name__ == "__main__":
    run()
