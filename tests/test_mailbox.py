"""
Tests for mailbox filing.

Test Coverage:
- Folder listing through the TTL cache and cache invalidation
- Folder lookup: exact, similar user folder, creation, concurrent creation
- Message filing: success, missing messages, expired authentication
- Folder naming from subjects, senders and participants
"""

import unittest
from unittest.mock import MagicMock, patch

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httplib2
from googleapiclient.errors import HttpError

from src.errors import MailboxError
from src.mail.client import MailboxClient
from src.mail.folders import determine_folder_name, topic_from_subject
from src.rules.schema import MessageSnapshot, ThreadSnapshot

FOLDERS = [
    {'id': 'INBOX', 'name': 'INBOX', 'type': 'system'},
    {'id': 'SPAM', 'name': 'SPAM', 'type': 'system'},
    {'id': 'Label_1', 'name': 'Admin Notifications', 'type': 'user'},
    {'id': 'Label_2', 'name': 'Acme', 'type': 'user'},
]


def http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({'status': status, 'reason': 'error'}), b'{}')


def make_thread(subject='Acme: quarterly review', messages=None, participants=None) -> ThreadSnapshot:
    if messages is None:
        messages = [
            MessageSnapshot(message_id='m-1', from_email='pm@acme.com'),
            MessageSnapshot(message_id='m-2', from_email='me@example.org'),
            MessageSnapshot(message_id=None, from_email='me@example.org'),
        ]
    return ThreadSnapshot(id='thread-1', subject=subject, messages=messages,
                          participants=participants or [])


class TestMailboxClient(unittest.TestCase):
    def setUp(self):
        # Mock mailbox API resource
        self.service = MagicMock()
        self.labels = self.service.users.return_value.labels.return_value
        self.messages = self.service.users.return_value.messages.return_value
        self.labels.list.return_value.execute.return_value = {'labels': list(FOLDERS)}
        self.labels.create.return_value.execute.return_value = {'id': 'Label_9', 'name': 'Ops'}
        self.client = MailboxClient(self.service, folder_cache_ttl=300)

    def test_folders_are_cached(self):
        self.client.list_folders()
        self.client.list_folders()
        self.assertEqual(self.labels.list.call_count, 1)

        self.client.invalidate_folders()
        self.client.list_folders()
        self.assertEqual(self.labels.list.call_count, 2)

    def test_cache_ttl_from_environment(self):
        with patch.dict(os.environ, {'FOLDER_CACHE_TTL': '5'}):
            self.assertEqual(MailboxClient(self.service)._folders.ttl, 5)
        self.assertEqual(MailboxClient(self.service, folder_cache_ttl=60)._folders.ttl, 60)

    def test_list_folders_error(self):
        self.labels.list.return_value.execute.side_effect = http_error(500)
        with self.assertRaises(MailboxError) as ctx:
            self.client.list_folders()
        self.assertEqual(ctx.exception.status, 500)
        self.assertFalse(ctx.exception.requires_sync)

    def test_find_folder(self):
        test_cases = [
            ('admin notifications', 'Label_1', 'exact, case insensitive'),
            ('Admin', 'Label_1', 'user folder containing the name'),
            ('Acme Corp', 'Label_2', 'name containing a user folder'),
            ('inbox', 'INBOX', 'exact system folder'),
            ('Travel', None, 'no match'),
        ]
        for name, folder_id, description in test_cases:
            with self.subTest(description=description):
                folder = self.client.find_folder(name)
                self.assertEqual(folder['id'] if folder else None, folder_id)

    def test_ensure_folder_creates_missing_folder(self):
        self.assertEqual(self.client.ensure_folder('Ops'), 'Label_9')
        body = self.labels.create.call_args.kwargs['body']
        self.assertEqual(body['name'], 'Ops')

        # Cache was invalidated by the creation
        self.client.list_folders()
        self.assertEqual(self.labels.list.call_count, 2)

    def test_ensure_folder_reuses_existing(self):
        self.assertEqual(self.client.ensure_folder('Admin Notifications'), 'Label_1')
        self.labels.create.assert_not_called()

    def test_create_folder_conflict(self):
        """A folder created concurrently is looked up again"""
        self.labels.create.return_value.execute.side_effect = http_error(409)
        self.labels.list.return_value.execute.side_effect = [
            {'labels': list(FOLDERS)},
            {'labels': list(FOLDERS) + [{'id': 'Label_7', 'name': 'Ops', 'type': 'user'}]},
        ]
        self.assertEqual(self.client.ensure_folder('Ops'), 'Label_7')

    def test_create_folder_failure(self):
        self.labels.create.return_value.execute.side_effect = http_error(403)
        with self.assertRaises(MailboxError):
            self.client.create_folder('Ops')

    def test_file_message(self):
        self.assertTrue(self.client.file_message('m-1', 'Label_1'))
        self.messages.modify.assert_called_once_with(
            userId='me', id='m-1', body={'addLabelIds': ['Label_1'], 'removeLabelIds': []}
        )

    def test_file_missing_message(self):
        self.messages.modify.return_value.execute.side_effect = http_error(404)
        self.assertFalse(self.client.file_message('m-1', 'Label_1'))

    def test_file_message_expired_token(self):
        self.messages.modify.return_value.execute.side_effect = http_error(401)
        with self.assertRaises(MailboxError) as ctx:
            self.client.file_message('m-1', 'Label_1')
        self.assertTrue(ctx.exception.requires_sync)

    def test_file_thread(self):
        result = self.client.file_thread(make_thread(), 'Admin Notifications')

        self.assertTrue(result.success)
        self.assertEqual(result.folder_id, 'Label_1')
        self.assertEqual(result.filed_count, 2)
        self.assertEqual(result.message, 'Successfully filed 2 emails to "Admin Notifications" folder')
        self.assertEqual(self.messages.modify.call_count, 2)

    def test_file_thread_names_folder(self):
        result = self.client.file_thread(make_thread(subject='Quarterly numbers from Acme'))
        self.assertEqual(result.folder_name, 'Acme')
        self.assertEqual(result.folder_id, 'Label_2')

    def test_file_thread_partial(self):
        self.messages.modify.return_value.execute.side_effect = [{}, http_error(404)]
        result = self.client.file_thread(make_thread(), 'Admin Notifications')

        self.assertTrue(result.success)
        self.assertEqual(result.filed_count, 1)
        self.assertIn('Filed 1 of 2 emails', result.message)

    def test_file_thread_nothing_filed(self):
        result = self.client.file_thread(make_thread(messages=[]), 'Admin Notifications')
        self.assertFalse(result.success)
        self.assertEqual(result.filed_count, 0)

    def test_file_thread_expired_token(self):
        self.messages.modify.return_value.execute.side_effect = http_error(401)
        result = self.client.file_thread(make_thread(), 'Admin Notifications')
        self.assertFalse(result.success)
        self.assertTrue(result.requires_sync)


class TestFolderNaming(unittest.TestCase):
    def test_topic_from_subject(self):
        test_cases = [
            ('Re: Apollo Launch: final checklist', 'Apollo Launch'),
            ('[Billing] Invoice 42', 'Billing'),
            ('Weekly Sync - agenda', 'Weekly Sync'),
            ('Ticket ABC-123 was updated', 'Project: ABC-123'),
            ('Quarterly planning notes, draft two', 'Quarterly Planning Notes'),
            ('Hi', None),
            ('', None),
        ]
        for subject, topic in test_cases:
            with self.subTest(subject=subject):
                self.assertEqual(topic_from_subject(subject), topic)

    def test_existing_folder_mentioned_in_subject(self):
        thread = make_thread(subject='Lunch with the acme team')
        self.assertEqual(determine_folder_name(thread, ['INBOX', 'Acme']), 'Acme')

    def test_system_folders_are_not_reused(self):
        thread = make_thread(subject='Spam report ready for review')
        self.assertNotEqual(determine_folder_name(thread, ['SPAM']), 'SPAM')

    def test_falls_back_to_sender_organization(self):
        thread = make_thread(subject='hello', messages=[MessageSnapshot(from_email='ceo@globex.com')])
        self.assertEqual(determine_folder_name(thread), 'Globex')

    def test_falls_back_to_participant_organization(self):
        thread = make_thread(
            subject='hey',
            messages=[MessageSnapshot(from_email='friend@gmail.com')],
            participants=['friend@gmail.com', 'lead@initech.com'],
        )
        self.assertEqual(determine_folder_name(thread), 'Initech')

    def test_default_folder(self):
        thread = make_thread(subject='', messages=[MessageSnapshot(from_email='friend@gmail.com')])
        self.assertEqual(determine_folder_name(thread), 'Processed Items')


if __name__ == '__main__':
    unittest.main()
