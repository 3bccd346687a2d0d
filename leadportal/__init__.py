# leadportal -- FastAPI server for bank marketing leads + auto-scoring
#
# Modules:
#   app          -- FastAPI application with lifespan management
#   config       -- environment configuration + logging setup
#   database     -- PostgreSQL / SQLite async engine
#   models       -- SQLAlchemy ORM models (customers, predictions)
#   schemas      -- Pydantic request/response schemas
#   repository   -- customer / prediction queries and writes
#   validation   -- field rules shared by the API and CSV import
#   csv_import   -- CSV parsing, coercion and row validation
#   cache        -- in-memory TTL stores for predictions + pending markers
#   autopredict  -- scoring coordinator (cached single, sweep, background triggers)
#   scheduler    -- APScheduler cron jobs for the auto-predict sweep
#   import_csv   -- CLI: CSV -> database import
#   routes/      -- API endpoints (customers, predictions)
