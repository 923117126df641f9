"""
Tests for the command line entry point.

Test Coverage:
- Environment loading happens before the database is configured
- Engine errors become JSON output and exit codes
"""

import json
import unittest
from io import StringIO
from unittest.mock import MagicMock, patch

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src import main as cli
from src.errors import RuleNotFoundError


class TestMain(unittest.TestCase):
    def test_dotenv_loaded_before_database(self):
        manager = MagicMock()
        with patch.object(cli, 'load_dotenv', manager.load_dotenv), \
                patch.object(cli, 'init_db', manager.init_db):
            self.assertEqual(cli.main(['--user', 'user-1', 'init-db']), 0)

        self.assertEqual([name for name, _, _ in manager.mock_calls], ['load_dotenv', 'init_db'])

    def test_parse_rules_command(self):
        args = cli.parse_args(['--user', 'user-1', 'rules', 'toggle', 'rule-1', 'off'])
        self.assertEqual((args.command, args.rules_command, args.rule_id, args.state),
                         ('rules', 'toggle', 'rule-1', 'off'))

    def test_not_found_exit_code(self):
        service = MagicMock()
        service.toggle_rule.side_effect = RuleNotFoundError('rule-1')
        with patch.object(cli, 'load_dotenv'), \
                patch.object(cli, 'init_db'), \
                patch.object(cli, 'session_scope'), \
                patch.object(cli, 'EmailProcessingService', return_value=service), \
                patch('sys.stdout', new_callable=StringIO) as stdout:
            code = cli.main(['--user', 'user-1', 'rules', 'toggle', 'rule-1', 'on'])

        self.assertEqual(code, 2)
        # Last line is the JSON error, log events may precede it
        output = json.loads(stdout.getvalue().strip().splitlines()[-1])
        self.assertEqual(output['code'], 'not_found')


if __name__ == '__main__':
    unittest.main()
