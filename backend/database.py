from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes for the signing and notary collections."""
        try:
            # Signing documents - version is part of every compare-and-swap filter
            await self.db.signing_documents.create_index("document_id", unique=True)
            await self.db.signing_documents.create_index([("document_id", 1), ("version", 1)])
            await self.db.signing_documents.create_index([("owner_id", 1), ("created_at", -1)])
            await self.db.signing_documents.create_index("status")

            # Notary
            await self.db.notary_appointments.create_index("appointment_id", unique=True)
            await self.db.notary_uploads.create_index("document_id", unique=True)
            await self.db.notary_uploads.create_index([("status", 1), ("uploaded_at", -1)])
            await self.db.notarized_records.create_index("record_id", unique=True)
            await self.db.notarized_records.create_index([("status", 1), ("notarization_date", -1)])

            # Audit log indexes - for document timeline queries
            await self.db.audit_logs.create_index([("resource_type", 1), ("resource_id", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index([("action", 1), ("timestamp", -1)])

            # Message log (outbox) indexes
            await self.db.message_logs.create_index([("status", 1), ("created_at", -1)])
            await self.db.message_logs.create_index([("template_key", 1), ("created_at", -1)])
            await self.db.message_logs.create_index("message_id", unique=True)
            await self.db.message_logs.create_index("provider_message_id", sparse=True)
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")

# Global database instance
database = Database()

