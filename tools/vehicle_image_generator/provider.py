import sys
from typing import Any, Dict, Optional

import requests

from .config import Config, Settings
from .errors import ProviderError


def _openai_headers(api_key: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}


def _error_message(resp: requests.Response) -> str:
    # OpenAI wraps failures as {"error": {"message": ..., "type": ...}}.
    try:
        data = resp.json()
    except ValueError:
        return resp.text
    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    return resp.text


class ImageProvider:
    def __init__(
        self,
        api_key: str,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.settings = settings or Settings()
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Config, settings: Settings) -> "ImageProvider":
        return cls(config.provider_key, settings)

    def test_reachable(self) -> bool:
        print(" Testing OpenAI connection...")
        url = f"{self.settings.provider_base_url}/models"
        try:
            resp = self.session.get(url, headers=_openai_headers(self.api_key), timeout=self.settings.provider_timeout_s)
            resp.raise_for_status()
        except requests.RequestException as e:
            print(f"[ERROR] OpenAI connection failed: {e}", file=sys.stderr)
            return False
        print("[OK] OpenAI connection successful!")
        return True

    def generate_image(self, prompt: str) -> str:
        """Request one image for prompt and return its URL.

        Provider failures (rate limit, rejected prompt, auth, network) surface as
        ProviderError with the HTTP status when there is one. Nothing is retried.
        """
        s = self.settings
        url = f"{s.provider_base_url}/images/generations"
        payload: Dict[str, Any] = {
            "model": s.image_model,
            "prompt": prompt,
            "size": s.image_size,
            "quality": s.image_quality,
            "style": s.image_style,
            "n": 1,
        }
        try:
            resp = self.session.post(url, headers=_openai_headers(self.api_key), json=payload, timeout=s.provider_timeout_s)
        except requests.RequestException as e:
            raise ProviderError(f"Image request failed: {e}")
        if resp.status_code != 200:
            raise ProviderError(
                f"Image request failed with status {resp.status_code}: {_error_message(resp)}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
            image_url = data["data"][0]["url"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Unexpected image response shape: {e}; response={resp.text}")
        if not image_url:
            raise ProviderError(f"Image response had no URL; response={resp.text}")
        return str(image_url)
