"""Entry point (no CLI args): one interactive login + connectivity check.

Behavior:
    1. Initialize logging (INFO level, EDUPAGE_LOG_LEVEL overrides)
    2. Load config.json / EDUPAGE_* environment
    3. Authenticate; on a captcha challenge print the image URL and prompt
       for the solved text (q to quit)
    4. Fetch the timetable viewer hash as a protected-session check
"""

from __future__ import annotations

from edupage.auth import AuthOk, CaptchaRequired, raise_for_result
from edupage.client import PortalClient
from edupage.config import ClientConfig, load_config
from edupage.console import Console
from edupage.errors import PortalError
from edupage.logger import Logger, setup_logging

log = Logger.bind('run')

MAX_CAPTCHA_ROUNDS = 3


class App:

    def __init__(self, config: ClientConfig | None = None):
        self.config = config

    def solve_captcha(self, result: CaptchaRequired) -> str:
        print("Captcha required / suspicious activity detected.")
        print(f"Open this URL in a browser and type the text from the image: {result.challenge_url or '(no image url)'}")
        return Console.input_str('captcha text (q to quit)')

    def login(self, client: PortalClient) -> bool:
        """False when the user gives up on the captcha; raises AuthRejected / NetworkError on failure."""
        result = client.authenticate()
        for _ in range(MAX_CAPTCHA_ROUNDS):
            if not isinstance(result, CaptchaRequired):
                break
            answer = self.solve_captcha(result)
            if not answer:
                return False
            result = client.authenticate(captcha_text=answer)
        if not isinstance(raise_for_result(result), AuthOk):
            log.error("captcha still required after the last round")
            return False
        return True

    def run(self) -> int:
        setup_logging()
        config = self.config or load_config()
        if not config.origin:
            log.error("Please set base_url (e.g. https://myschool.edupage.org)")
            return 2
        if not config.username or not config.password:
            log.warn("No username/password set yet. Nothing to do until configured.")
            return 2

        try:
            with PortalClient(config) as client:
                if not self.login(client):
                    return 1
                gsh = client.fetch_gsh()
                log.info(f"protected session ready gsh={gsh[:4]}...")
        except PortalError as e:
            log.error(f"sync failed: {e}")
            return 1
        return 0


def main() -> int:
    return App().run()


if __name__ == "__main__":
    raise SystemExit(main())
