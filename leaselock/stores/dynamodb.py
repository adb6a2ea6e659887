"""
DynamoDB lease store.

Table punya satu hash key "_id" (lock name). Acquire memakai
update_item dengan ConditionExpression
"lockUntil <= :availableAt or attribute_not_exists(lockUntil)".
boto3 client synchronous, jadi setiap call dijalankan di executor.
"""

import asyncio
import functools
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..core.exceptions import ConditionNotMet, StoreTransportError
from ..core.records import ID, LOCK_UNTIL, LOCKED_AT, LOCKED_BY, LeaseRecord, to_iso_string
from ..core.store import LeaseStore
from ..utils.config import Config

logger = logging.getLogger(__name__)

OBTAIN_LOCK_QUERY = f"set {LOCK_UNTIL} = :lockUntil, {LOCKED_AT} = :lockedAt, {LOCKED_BY} = :lockedBy"
OBTAIN_LOCK_CONDITION = f"{LOCK_UNTIL} <= :availableAt or attribute_not_exists({LOCK_UNTIL})"
RELEASE_LOCK_QUERY = f"set {LOCK_UNTIL} = :lockUntil"
RELEASE_LOCK_CONDITION = f"{LOCK_UNTIL} = :heldUntil"

CONDITIONAL_CHECK_FAILED = 'ConditionalCheckFailedException'


def _s(value: str) -> Dict[str, str]:
    return {'S': value}


class DynamoDBLeaseStore(LeaseStore):
    """LeaseStore di atas DynamoDB table"""

    def __init__(self,
                 table_name: Optional[str] = None,
                 client: Any = None):
        """
        Args:
            table_name: Nama table (default: Config.LEASE_TABLE)
            client: boto3 DynamoDB client (default: dibuat dari Config)
        """
        self.table_name = table_name or Config.LEASE_TABLE
        if client is None:
            client = boto3.client(
                'dynamodb',
                region_name=Config.AWS_REGION,
                endpoint_url=Config.DYNAMODB_ENDPOINT or None,
                config=BotoConfig(
                    connect_timeout=Config.STORE_TIMEOUT,
                    read_timeout=Config.STORE_TIMEOUT,
                    retries={'max_attempts': 1, 'mode': 'standard'}
                )
            )
        self.client = client

    async def _call(self, operation: str, **kwargs) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None,
                functools.partial(getattr(self.client, operation), **kwargs)
            )
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == CONDITIONAL_CHECK_FAILED:
                raise ConditionNotMet(kwargs.get('Key', {}).get(ID, {}).get('S', '')) from e
            logger.warning(f"DynamoDB {operation} failed: {e}")
            raise StoreTransportError(f"DynamoDB {operation} failed: {e}") from e
        except BotoCoreError as e:
            logger.warning(f"DynamoDB {operation} failed: {e}")
            raise StoreTransportError(f"DynamoDB {operation} failed: {e}") from e

    def _to_record(self, name: str, attributes: Dict[str, Dict[str, str]]) -> LeaseRecord:
        data = {key: value['S'] for key, value in attributes.items() if 'S' in value}
        data[ID] = name
        return LeaseRecord.from_dict(data)

    async def try_update(self,
                         name: str,
                         lock_until: datetime,
                         locked_at: datetime,
                         locked_by: str,
                         available_at: datetime) -> LeaseRecord:
        response = await self._call(
            'update_item',
            TableName=self.table_name,
            Key={ID: _s(name)},
            UpdateExpression=OBTAIN_LOCK_QUERY,
            ConditionExpression=OBTAIN_LOCK_CONDITION,
            ExpressionAttributeValues={
                ':lockUntil': _s(to_iso_string(lock_until)),
                ':lockedAt': _s(to_iso_string(locked_at)),
                ':lockedBy': _s(locked_by),
                ':availableAt': _s(to_iso_string(available_at))
            },
            ReturnValues='ALL_NEW'
        )
        return self._to_record(name, response['Attributes'])

    async def update(self,
                     name: str,
                     lock_until: datetime,
                     held_until: Optional[datetime] = None) -> LeaseRecord:
        params = {
            'TableName': self.table_name,
            'Key': {ID: _s(name)},
            'UpdateExpression': RELEASE_LOCK_QUERY,
            'ExpressionAttributeValues': {':lockUntil': _s(to_iso_string(lock_until))},
            'ReturnValues': 'ALL_NEW'
        }
        if held_until is not None:
            params['ConditionExpression'] = RELEASE_LOCK_CONDITION
            params['ExpressionAttributeValues'][':heldUntil'] = _s(to_iso_string(held_until))

        response = await self._call('update_item', **params)
        return self._to_record(name, response['Attributes'])

    async def get(self, name: str) -> Optional[LeaseRecord]:
        response = await self._call(
            'get_item',
            TableName=self.table_name,
            Key={ID: _s(name)},
            ConsistentRead=True
        )
        item = response.get('Item')
        if not item or LOCK_UNTIL not in item:
            return None
        return self._to_record(name, item)

    async def create_lease_table(self,
                                 read_capacity: Optional[int] = None,
                                 write_capacity: Optional[int] = None,
                                 wait: bool = False):
        """
        Create locking table.
        Tidak mengecek apakah table dengan nama ini sudah ada.

        Args:
            read_capacity: Provisioned read capacity units
            write_capacity: Provisioned write capacity units
            wait: Tunggu sampai table ACTIVE
        """
        await self._call(
            'create_table',
            TableName=self.table_name,
            KeySchema=[{'AttributeName': ID, 'KeyType': 'HASH'}],
            AttributeDefinitions=[{'AttributeName': ID, 'AttributeType': 'S'}],
            ProvisionedThroughput={
                'ReadCapacityUnits': read_capacity or Config.DYNAMODB_READ_CAPACITY,
                'WriteCapacityUnits': write_capacity or Config.DYNAMODB_WRITE_CAPACITY
            }
        )
        logger.info(f"Created lease table {self.table_name}")

        if wait:
            waiter = self.client.get_waiter('table_exists')
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None,
                functools.partial(waiter.wait, TableName=self.table_name)
            )

    async def delete_lease_table(self):
        await self._call('delete_table', TableName=self.table_name)
        logger.info(f"Deleted lease table {self.table_name}")
