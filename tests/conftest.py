"""
Shared pytest fixtures for FunnelGate tests.
"""

import os
import sys

import boto3
import pytest
from moto import mock_aws

# Add functions directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "functions"))


def pytest_configure(config):
    """Set AWS credentials before test collection.

    This runs before test collection starts, ensuring boto3 resource
    creation during imports doesn't fail with NoRegionError.
    """
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_REGION", "us-east-1")

    # Disable HTTP client connection pooling in tests to allow proper mocking
    # Each test creates fresh clients, allowing httpx.MockTransport to work
    os.environ["USE_CONNECTION_POOLING"] = "false"


@pytest.fixture(autouse=True)
def aws_credentials():
    """Set fake AWS credentials for all tests."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    os.environ["AWS_REGION"] = "us-east-1"


@pytest.fixture(autouse=True)
def reset_aws_clients():
    """Reset shared AWS client singletons between tests."""
    from shared.aws_clients import reset_clients

    reset_clients()
    yield
    reset_clients()


def _simple_table(dynamodb, name: str, key: str):
    dynamodb.create_table(
        TableName=name,
        KeySchema=[{"AttributeName": key, "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": key, "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )


def create_dynamodb_tables(dynamodb):
    """Create all DynamoDB tables with their GSIs.

    Args:
        dynamodb: boto3 DynamoDB resource
    """
    _simple_table(dynamodb, "funnelgate-web-results", "id")
    _simple_table(dynamodb, "funnelgate-fallback-urls", "id")
    _simple_table(dynamodb, "funnelgate-sessions", "session_id")
    _simple_table(dynamodb, "funnelgate-clicks", "id")
    _simple_table(dynamodb, "funnelgate-email-captures", "id")

    # Prelandings, looked up by the rule they belong to
    dynamodb.create_table(
        TableName="funnelgate-prelandings",
        KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "id", "AttributeType": "S"},
            {"AttributeName": "web_result_id", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "web-result-index",
                "KeySchema": [{"AttributeName": "web_result_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )

    # Consultation pages, looked up by slug
    dynamodb.create_table(
        TableName="funnelgate-consultation-pages",
        KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "id", "AttributeType": "S"},
            {"AttributeName": "slug", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "slug-index",
                "KeySchema": [{"AttributeName": "slug", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )

    # Settings: sequence cursors and landing content
    dynamodb.create_table(
        TableName="funnelgate-settings",
        KeySchema=[
            {"AttributeName": "pk", "KeyType": "HASH"},
            {"AttributeName": "sk", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def mock_dynamodb():
    """Provide mocked DynamoDB (and CloudWatch) with tables."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        create_dynamodb_tables(dynamodb)
        yield dynamodb


@pytest.fixture
def seeded_rules(mock_dynamodb):
    """Destination rules covering the gate cases."""
    table = mock_dynamodb.Table("funnelgate-web-results")
    rules = [
        {
            "id": "wr-worldwide",
            "name": "Worldwide offer",
            "link": "https://offers.example.com/worldwide",
            "allowed_countries": ["worldwide"],
            "is_active": True,
            "serial_number": 1,
        },
        {
            "id": "wr-us-gb",
            "name": "US and GB offer",
            "link": "https://offers.example.com/us-gb",
            "allowed_countries": ["US", "GB"],
            "is_active": True,
            "serial_number": 2,
        },
        {
            "id": "wr-open",
            "name": "Unrestricted offer",
            "link": "https://offers.example.com/open",
            "is_active": True,
            "serial_number": 3,
        },
        {
            "id": "wr-inactive",
            "name": "Retired offer",
            "link": "https://offers.example.com/retired",
            "is_active": False,
            "serial_number": 4,
        },
    ]
    for rule in rules:
        table.put_item(Item=rule)
    return mock_dynamodb


@pytest.fixture
def seeded_fallback_pool(mock_dynamodb):
    """Three worldwide fallback URLs plus rows that must never be served."""
    table = mock_dynamodb.Table("funnelgate-fallback-urls")
    rows = [
        {"id": "fb-1", "url": "https://one.example.com", "sequence_order": 1,
         "is_active": True, "allowed_countries": ["worldwide"]},
        {"id": "fb-2", "url": "https://two.example.com", "sequence_order": 2,
         "is_active": True, "allowed_countries": ["worldwide"]},
        {"id": "fb-3", "url": "https://three.example.com", "sequence_order": 3,
         "is_active": True, "allowed_countries": ["worldwide"]},
        {"id": "fb-sheet", "url": "https://docs.google.com/spreadsheets/d/abc", "sequence_order": 4,
         "is_active": True},
        {"id": "fb-off", "url": "https://off.example.com", "sequence_order": 5,
         "is_active": False},
    ]
    for row in rows:
        table.put_item(Item=row)
    return mock_dynamodb


@pytest.fixture
def seeded_prelanding(seeded_rules):
    """Active prelanding attached to the worldwide rule."""
    seeded_rules.Table("funnelgate-prelandings").put_item(Item={
        "id": "pl-1",
        "web_result_id": "wr-worldwide",
        "headline": "Get the guide",
        "description": "Enter your email to continue",
        "email_placeholder": "you@example.com",
        "cta_button_text": "Continue",
        "is_active": True,
    })
    return seeded_rules


@pytest.fixture
def api_gateway_event():
    """Base API Gateway event for Lambda handler tests."""
    return {
        "httpMethod": "GET",
        "headers": {"CF-IPCountry": "US"},
        "pathParameters": {},
        "queryStringParameters": {},
        "body": None,
        "requestContext": {
            "requestId": "test-request-id",
            "identity": {"sourceIp": "127.0.0.1"},
        },
    }
