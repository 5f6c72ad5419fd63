import unittest
from unittest.mock import Mock

import requests

from assetforge.storage import JsonLoader


def make_session(payload=None, error=None) -> Mock:
    response = Mock()
    response.json.return_value = payload
    response.raise_for_status = Mock(side_effect=error)
    return Mock(get=Mock(return_value=response))


class JsonLoaderTests(unittest.IsolatedAsyncioTestCase):
    async def test_loads_and_keeps_unknown_fields(self) -> None:
        session = make_session({"name": "Mochi", "image": "https://x/1.png", "edition": 3})
        loader = JsonLoader(timeout=2.0, session=session)
        metadata = await loader.load_metadata("https://x/1.json")
        self.assertEqual(metadata.name, "Mochi")
        self.assertEqual(metadata.model_extra, {"edition": 3})
        session.get.assert_called_once_with("https://x/1.json", timeout=2.0)

    async def test_http_error_yields_none(self) -> None:
        loader = JsonLoader(session=make_session(error=requests.HTTPError("404")))
        with self.assertLogs("assetforge", level="WARNING"):
            self.assertIsNone(await loader.load_metadata("https://x/missing.json"))

    async def test_invalid_document_yields_none(self) -> None:
        loader = JsonLoader(session=make_session(["not", "an", "object"]))
        self.assertIsNone(await loader.load_metadata("https://x/list.json"))

    async def test_empty_uri_is_not_fetched(self) -> None:
        session = make_session({})
        self.assertIsNone(await JsonLoader(session=session).load_metadata(""))
        session.get.assert_not_called()

    async def test_download_json_propagates_errors(self) -> None:
        loader = JsonLoader(session=make_session(error=requests.HTTPError("500")))
        with self.assertRaises(requests.HTTPError):
            await loader.download_json("https://x/1.json")


if __name__ == "__main__":
    unittest.main()
