import logging
import sys


def setup_logging(level: str = "INFO"):
    """
    Настройка корневого логгера. Вызывается один раз при старте,
    модули пишут через logging.getLogger(__name__).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - [%(levelname)s] - %(message)s",
        stream=sys.stdout,
    )
    # шумные библиотеки
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)
