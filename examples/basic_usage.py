import asyncio
import dataclasses

from signal_sidecar.config import load_config
from signal_sidecar.core.sidecar import Sidecar
from signal_sidecar.logging_config import configure_logging


async def main():
    config = load_config("examples/sidecar.yml")
    # Faster polling and short windows for local experiments
    config = dataclasses.replace(config, polling_interval=1,
                                 health_dampening_interval=5, drain_grace_interval=15)
    configure_logging(config.log_level)

    sidecar = Sidecar(config)
    await sidecar.start()
    print(f"Sidecar running: http :{config.http_port}, agent :{config.tcp_port}. Press Ctrl+C to stop.")

    try:
        await asyncio.Event().wait()
    finally:
        await sidecar.stop()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
