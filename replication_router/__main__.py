from replication_router.cli import get_router_group


def run_cli() -> None:  # pragma: no cover
    """Replication router CLI"""
    get_router_group()()


if __name__ == "__main__":  # pragma: no cover
    run_cli()
