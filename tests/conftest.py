"""Shared fixtures for the agenda sync tests."""
import os
from unittest.mock import patch
from zoneinfo import ZoneInfo

import boto3
import pytest
from moto import mock_aws

from processor.models import Event
from storage.dynamodb_manager import DynamoDBManager

VANCOUVER = ZoneInfo('America/Vancouver')


def make_event(title='Transport Layer Security', start='2024-11-05 09:30:00',
               end='2024-11-05 11:30:00', type_label='session', group='tls',
               area='sec', location='Regency A', key='1001', detail_url=None, **kwargs):
    """Build an Event with sensible defaults for a WG session."""
    return Event(
        day=start[:10],
        start_raw=start,
        end_raw=end,
        title=title,
        detail_url=detail_url or f'https://datatracker.ietf.org/meeting/121/session/{key}',
        location=location,
        group=group,
        area=area,
        session_type_label=type_label,
        key=key,
        **kwargs
    )


@pytest.fixture
def aws_credentials():
    """Fake credentials so boto3 never reaches a real account."""
    env_vars = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': 'us-east-1'
    }
    with patch.dict(os.environ, env_vars):
        yield


@pytest.fixture
def dynamodb_table(aws_credentials):
    """Create a mock DynamoDB table for testing."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        table = dynamodb.create_table(
            TableName='test-ietf-agenda',
            KeySchema=[
                {'AttributeName': 'entity_type', 'KeyType': 'HASH'},
                {'AttributeName': 'record_id', 'KeyType': 'RANGE'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'entity_type', 'AttributeType': 'S'},
                {'AttributeName': 'record_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield table


@pytest.fixture
def store(dynamodb_table):
    """Create DynamoDBManager instance with mock table."""
    return DynamoDBManager('test-ietf-agenda', region_name='us-east-1')
