from fastapi import FastAPI
from app.startup import configure_logging, run_startup_checks
from core.query_logger import query_logger_instance

# ========== Orders Management ==========
from modules.orders.routes.order_routes import router as order_router

# ========== Customers ==========
from modules.customers.routes.customer_routes import router as customer_router

# ========== Loyalty ==========
from modules.loyalty.routes.loyalty_routes import router as loyalty_router

configure_logging()

app = FastAPI(
    title="KitchenSync - Order Fulfillment & Loyalty API",
    description="""
    Order fulfillment and loyalty ledger for restaurant businesses.

    ## Features

    * **Order Intake** - Priced carts become pending orders with per-day order numbers
    * **Order Lifecycle** - Forward-only status changes with exactly-once completion effects
    * **Loyalty Ledger** - Append-only points ledger with tiers, redemptions and adjustments
    * **Program Settings** - Per-business points rate, minimum spend and tier thresholds
    * **Reporting** - Daily order stats and customer activity timelines
    """,
    version="1.0.0",
)

app.include_router(order_router)
app.include_router(customer_router)
app.include_router(loyalty_router)


@app.on_event("startup")
async def startup_event():
    """Validate configuration and prepare the database"""
    run_startup_checks()


@app.on_event("shutdown")
async def shutdown_event():
    query_logger_instance.log_query_stats()


@app.get("/")
def read_root():
    return {"message": "KitchenSync fulfillment service is running"}
