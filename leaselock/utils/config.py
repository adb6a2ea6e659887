"""
Configuration manager untuk lease lock.
File ini membaca environment variables dan menyediakan
konfigurasi default untuk lock, stores, dan lease store node.
"""

import os
from dotenv import load_dotenv

# Load environment variables dari .env file
load_dotenv()


class Config:
    """Class untuk manage semua konfigurasi sistem"""

    # Node Configuration (lease store node)
    NODE_ID: int = int(os.getenv('NODE_ID', 1))
    NODE_HOST: str = os.getenv('NODE_HOST', 'localhost')
    NODE_PORT: int = int(os.getenv('NODE_PORT', 5000))

    # Lease store backend: memory, http, redis, dynamodb
    LEASE_STORE: str = os.getenv('LEASE_STORE', 'http')
    LEASE_STORE_URL: str = os.getenv('LEASE_STORE_URL', 'http://localhost:5000')
    LEASE_TABLE: str = os.getenv('LEASE_TABLE', 'leaselock')

    # Redis Configuration
    REDIS_HOST: str = os.getenv('REDIS_HOST', 'localhost')
    REDIS_PORT: int = int(os.getenv('REDIS_PORT', 6379))
    REDIS_DB: int = int(os.getenv('REDIS_DB', 0))
    REDIS_KEY_PREFIX: str = os.getenv('REDIS_KEY_PREFIX', 'lease:')

    # DynamoDB Configuration
    AWS_REGION: str = os.getenv('AWS_REGION', 'us-east-1')
    DYNAMODB_ENDPOINT: str = os.getenv('DYNAMODB_ENDPOINT', '')
    DYNAMODB_READ_CAPACITY: int = int(os.getenv('DYNAMODB_READ_CAPACITY', 1))
    DYNAMODB_WRITE_CAPACITY: int = int(os.getenv('DYNAMODB_WRITE_CAPACITY', 1))

    # Lock Configuration (dalam seconds)
    STORE_TIMEOUT: float = float(os.getenv('STORE_TIMEOUT', 5.0))
    LOCKED_BY: str = os.getenv('LOCKED_BY', '')

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE: str = os.getenv('LOG_FILE', '')

    @classmethod
    def display(cls):
        """Print semua konfigurasi untuk debugging"""
        print("=== Configuration ===")
        print(f"Node ID: {cls.NODE_ID}")
        print(f"Node Address: {cls.NODE_HOST}:{cls.NODE_PORT}")
        print(f"Lease Store: {cls.LEASE_STORE}")
        if cls.LEASE_STORE == 'http':
            print(f"Store URL: {cls.LEASE_STORE_URL}")
        elif cls.LEASE_STORE == 'redis':
            print(f"Redis: {cls.REDIS_HOST}:{cls.REDIS_PORT}/{cls.REDIS_DB}")
        elif cls.LEASE_STORE == 'dynamodb':
            print(f"DynamoDB: {cls.LEASE_TABLE} ({cls.AWS_REGION})")
        print(f"Store Timeout: {cls.STORE_TIMEOUT}s")
        print("=" * 30)


# Test configuration saat file dijalankan langsung
if __name__ == "__main__":
    Config.display()
