import json
import os
import tempfile
import unittest
from unittest.mock import patch

from solders.keypair import Keypair

from assetforge.client import AssetClient
from assetforge.programs import TOKEN_METADATA_PROGRAM_ID
from assetforge.settings import Settings, load_keypair


class LoadKeypairTests(unittest.TestCase):
    def _write(self, payload) -> str:
        handle = tempfile.NamedTemporaryFile("w", suffix=".json", delete=False)
        with handle:
            json.dump(payload, handle)
        self.addCleanup(os.remove, handle.name)
        return handle.name

    def test_list_and_secret_key_formats(self) -> None:
        keypair = Keypair()
        secret = list(bytes(keypair))
        self.assertEqual(load_keypair(self._write(secret)).pubkey(), keypair.pubkey())
        self.assertEqual(load_keypair(self._write({"secretKey": secret})).pubkey(), keypair.pubkey())

    def test_bad_files(self) -> None:
        with self.assertRaises(ValueError):
            load_keypair("/nonexistent/keypair.json")
        with self.assertRaises(ValueError):
            load_keypair(self._write({"unexpected": 1}))
        with self.assertRaises(ValueError):
            load_keypair(self._write([1, 2, 3]))

    def test_home_relative_path_and_invalid_json(self) -> None:
        keypair = Keypair()
        path = self._write(list(bytes(keypair)))
        home, name = os.path.split(path)
        with patch.dict(os.environ, {"HOME": home}):
            self.assertEqual(load_keypair(f"~/{name}").pubkey(), keypair.pubkey())
        with open(path, "w", encoding="utf-8") as fh:
            fh.write("not json")
        with self.assertRaises(ValueError):
            load_keypair(path)


class SettingsTests(unittest.TestCase):
    def test_environment_prefix(self) -> None:
        env = {"ASSETFORGE_CLUSTER": "mainnet-beta", "ASSETFORGE_SKIP_PREFLIGHT": "true"}
        with patch.dict(os.environ, env):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.cluster, "mainnet-beta")
        self.assertTrue(settings.skip_preflight)

    def test_client_from_settings(self) -> None:
        override = str(Keypair().pubkey())
        settings = Settings(
            _env_file=None, cluster="mainnet-beta", token_metadata_program_id=override, log_level="WARNING"
        )
        with patch("assetforge.client.AsyncClient") as async_client:
            client = AssetClient.from_settings(settings)
        async_client.assert_called_once()
        self.assertEqual(client.cluster, "mainnet-beta")
        self.assertEqual(str(client.programs.token_metadata()), override)
        self.assertNotEqual(client.programs.token_metadata(), TOKEN_METADATA_PROGRAM_ID)
        self.assertEqual(client.scope().confirm_options.commitment, "finalized")


if __name__ == "__main__":
    unittest.main()
