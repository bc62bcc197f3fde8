"""
python -m usage_aggregator
"""

from .main import cli

if __name__ == "__main__":
    cli()
