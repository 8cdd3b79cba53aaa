"""
Tests for loading the TMDb key from the environment or Secret Manager.
"""

import os
import unittest
from unittest.mock import patch

from watchme import secret_helper

GCP_VARS = ("TMDB_API_KEY", "GCP_PROJECT", "TMDB_SECRET_NAME", "ENABLE_GCP_SECRETS",
            "GAE_ENV", "CLOUD_RUN_SERVICE", "GOOGLE_CLOUD_PROJECT")


class TestSecretHelper(unittest.TestCase):

    def setUp(self):
        self.env = patch.dict(os.environ, {}, clear=False)
        self.env.start()
        for name in GCP_VARS:
            os.environ.pop(name, None)

    def tearDown(self):
        self.env.stop()

    def test_env_var_wins(self):
        os.environ["TMDB_API_KEY"] = "from-env"
        with patch.object(secret_helper, "get_secret_from_manager") as mock_get:
            self.assertEqual(secret_helper.load_tmdb_key(), "from-env")
        mock_get.assert_not_called()

    def test_no_project(self):
        self.assertIsNone(secret_helper.load_tmdb_key())

    def test_skipped_outside_gcp(self):
        os.environ["GCP_PROJECT"] = "my-project"
        with patch.object(secret_helper, "get_secret_from_manager") as mock_get:
            self.assertIsNone(secret_helper.load_tmdb_key())
        mock_get.assert_not_called()

    def test_secret_manager_lookup(self):
        os.environ.update({"GCP_PROJECT": "my-project", "ENABLE_GCP_SECRETS": "1"})
        with patch.object(secret_helper, "get_secret_from_manager", return_value="from-gcp") as mock_get:
            self.assertEqual(secret_helper.load_tmdb_key(), "from-gcp")
        mock_get.assert_called_once_with("my-project", "tmdb-api-key")

    def test_secret_manager_failure(self):
        os.environ.update({"GCP_PROJECT": "my-project", "CLOUD_RUN_SERVICE": "watchme"})
        with patch.object(secret_helper, "get_secret_from_manager", side_effect=RuntimeError("denied")):
            self.assertIsNone(secret_helper.load_tmdb_key())

    def test_inject_sets_env(self):
        os.environ.update({"GCP_PROJECT": "my-project", "ENABLE_GCP_SECRETS": "1"})
        with patch.object(secret_helper, "get_secret_from_manager", return_value="from-gcp"):
            self.assertTrue(secret_helper.inject_tmdb_key())
        self.assertEqual(os.environ["TMDB_API_KEY"], "from-gcp")

    def test_inject_without_key(self):
        self.assertFalse(secret_helper.inject_tmdb_key())
        self.assertNotIn("TMDB_API_KEY", os.environ)
