import os
import sys
import unittest
import keyring
import yaml
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig, database_path

class DummyKeyring(keyring.backend.KeyringBackend):
    priority = 1
    def __init__(self):
        self.store = {}
    def get_password(self, service, username):
        return self.store.get((service, username))
    def set_password(self, service, username, password):
        self.store[(service, username)] = password
    def delete_password(self, service, username):
        self.store.pop((service, username), None)

class SettingsEncryptionTest(unittest.TestCase):
    def setUp(self) -> None:
        keyring.set_keyring(DummyKeyring())
        os.environ['ENCRYPT_SETTINGS'] = '1'
        self.path = 'enc_settings.yaml'
        if os.path.exists(self.path):
            os.remove(self.path)

    def tearDown(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
        os.environ.pop('ENCRYPT_SETTINGS', None)

    def test_encrypt_and_load(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'password_pepper': 'secret', 'language': 'pt'})
        self.assertTrue(os.path.exists(self.path))
        with open(self.path, encoding='utf-8') as f:
            raw = yaml.safe_load(f)
        self.assertIs(raw['password_pepper'], True)
        data = cfg.load()
        self.assertEqual(data['password_pepper'], 'secret')
        self.assertEqual(data['language'], 'pt')

    def test_plain_settings_without_encryption(self) -> None:
        os.environ.pop('ENCRYPT_SETTINGS', None)
        cfg = YamlConfig(self.path)
        cfg.save({'password_pepper': 'visible'})
        self.assertEqual(cfg.load()['password_pepper'], 'visible')

    def test_redact_drops_pepper(self) -> None:
        data = {'password_pepper': 'secret', 'language': 'pt'}
        self.assertEqual(YamlConfig.redact(data), {'language': 'pt'})
        self.assertIn('password_pepper', data)

    def test_marker_without_keyring_entry_is_dropped(self) -> None:
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({'password_pepper': True, 'language': 'pt'}, f)
        self.assertEqual(YamlConfig(self.path).load(), {'language': 'pt'})


class DatabasePathTest(unittest.TestCase):
    def tearDown(self) -> None:
        os.environ.pop('DB_URL', None)

    def test_default_and_explicit_url(self) -> None:
        os.environ.pop('DB_URL', None)
        self.assertEqual(database_path('workout.db'), 'workout.db')
        self.assertEqual(database_path('workout.db', 'sqlite:///other.db'), 'other.db')

    def test_env_url_and_unsupported_scheme(self) -> None:
        os.environ['DB_URL'] = 'sqlite:///env.db'
        self.assertEqual(database_path('workout.db'), 'env.db')
        os.environ['DB_URL'] = 'postgresql://localhost/fit'
        self.assertEqual(database_path('workout.db'), 'workout.db')
