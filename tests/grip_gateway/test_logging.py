import logging
from unittest.mock import patch

from grip_gateway.logging import setup_logging


class TestSetupLogging:
    def test_quiets_http_libraries(self):
        with patch("logging.basicConfig") as basic_config:
            setup_logging(logging.DEBUG)

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING
        basic_config.assert_called_once_with(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
