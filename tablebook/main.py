from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from datetime import date, datetime
from typing import List, Optional
import logging

from .analytics import summarize
from .campaigns import CampaignService
from .closures import closed_dates
from .config import settings
from .database import get_db, init_db
from .errors import ReservationError
from .gateway import DataStoreGateway
from .management_service import ManagementService
from .models import Customer
from .pricing import cost_for
from .reservation_service import ReservationService
from . import schemas

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="TableBook",
    description="Restaurant table reservations: availability, bookings, pricing and closures",
    version="1.0.0"
)


@app.exception_handler(ReservationError)
async def reservation_error_handler(request: Request, exc: ReservationError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "message": exc.message, "retryable": exc.retryable},
    )


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup"""
    init_db()
    if settings.seed_demo:
        from .init_db import init_database
        init_database()


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


# ---------------------------
# Restaurants
# ---------------------------

@app.post("/api/restaurants", response_model=schemas.Restaurant, status_code=201)
def create_restaurant(data: schemas.RestaurantCreate, db: Session = Depends(get_db)):
    return ManagementService(db).create_restaurant(data)


@app.get("/api/restaurants/{restaurant_id}", response_model=schemas.Restaurant)
def get_restaurant(restaurant_id: int, db: Session = Depends(get_db)):
    return DataStoreGateway(db).get_restaurant(restaurant_id)


@app.patch("/api/restaurants/{restaurant_id}", response_model=schemas.Restaurant)
def update_restaurant(restaurant_id: int, data: schemas.RestaurantUpdate, db: Session = Depends(get_db)):
    return ManagementService(db).update_restaurant(restaurant_id, data)


@app.put("/api/restaurants/{restaurant_id}/booking-cost", response_model=schemas.Restaurant)
def set_booking_cost(restaurant_id: int, data: schemas.BookingCostUpdate, db: Session = Depends(get_db)):
    return ManagementService(db).set_booking_cost(restaurant_id, data.booking_cost)


@app.get("/api/restaurants/{restaurant_id}/cost", response_model=schemas.CostResponse)
def get_cost(restaurant_id: int, party_size: int, db: Session = Depends(get_db)):
    """Deposit a party of ``party_size`` would pay"""
    store = DataStoreGateway(db)
    restaurant = store.get_restaurant(restaurant_id)
    cost = cost_for(restaurant.booking_cost, store.pricing_tiers(restaurant_id), party_size)
    return schemas.CostResponse(party_size=party_size, cost=cost, currency=restaurant.currency or settings.default_currency)


# ---------------------------
# Table types and tables
# ---------------------------

@app.get("/api/restaurants/{restaurant_id}/table-types", response_model=List[schemas.TableType])
def list_table_types(restaurant_id: int, db: Session = Depends(get_db)):
    return ManagementService(db).list_table_types(restaurant_id)


@app.post("/api/restaurants/{restaurant_id}/table-types", response_model=schemas.TableType, status_code=201)
def add_table_type(restaurant_id: int, data: schemas.TableTypeCreate, db: Session = Depends(get_db)):
    return ManagementService(db).add_table_type(restaurant_id, data)


@app.delete("/api/restaurants/{restaurant_id}/table-types/{table_type_id}", status_code=204)
def delete_table_type(restaurant_id: int, table_type_id: int, db: Session = Depends(get_db)):
    ManagementService(db).delete_table_type(restaurant_id, table_type_id)


@app.get("/api/restaurants/{restaurant_id}/tables", response_model=List[schemas.Table])
def list_tables(restaurant_id: int, include_archived: bool = False, db: Session = Depends(get_db)):
    return ManagementService(db).list_tables(restaurant_id, include_archived)


@app.post("/api/restaurants/{restaurant_id}/tables", response_model=List[schemas.Table], status_code=201)
def add_tables(restaurant_id: int, data: schemas.TableCreate, db: Session = Depends(get_db)):
    return ManagementService(db).add_tables(restaurant_id, data)


@app.delete("/api/restaurants/{restaurant_id}/tables/{table_id}", response_model=schemas.TableRemoval)
def remove_table(restaurant_id: int, table_id: int, db: Session = Depends(get_db)):
    outcome = ManagementService(db).remove_table(restaurant_id, table_id)
    return schemas.TableRemoval(table_id=table_id, outcome=outcome)


# ---------------------------
# Pricing tiers
# ---------------------------

@app.get("/api/restaurants/{restaurant_id}/pricing-tiers", response_model=List[schemas.PricingTier])
def list_pricing_tiers(restaurant_id: int, db: Session = Depends(get_db)):
    store = DataStoreGateway(db)
    store.get_restaurant(restaurant_id)
    return store.pricing_tiers(restaurant_id)


@app.post("/api/restaurants/{restaurant_id}/pricing-tiers", response_model=schemas.PricingTier, status_code=201)
def add_pricing_tier(restaurant_id: int, data: schemas.PricingTierCreate, db: Session = Depends(get_db)):
    return ManagementService(db).add_pricing_tier(restaurant_id, data)


@app.delete("/api/restaurants/{restaurant_id}/pricing-tiers/{tier_id}", status_code=204)
def delete_pricing_tier(restaurant_id: int, tier_id: int, db: Session = Depends(get_db)):
    ManagementService(db).delete_pricing_tier(restaurant_id, tier_id)


# ---------------------------
# Closures and limits
# ---------------------------

@app.get("/api/restaurants/{restaurant_id}/closures", response_model=List[schemas.Closure])
def list_closures(restaurant_id: int, db: Session = Depends(get_db)):
    return ManagementService(db).list_closures(restaurant_id)


@app.post("/api/restaurants/{restaurant_id}/closures", response_model=schemas.Closure, status_code=201)
def add_closure(restaurant_id: int, data: schemas.ClosureCreate, db: Session = Depends(get_db)):
    return ManagementService(db).add_closure(restaurant_id, data)


@app.delete("/api/restaurants/{restaurant_id}/closures/{closure_id}", status_code=204)
def delete_closure(restaurant_id: int, closure_id: int, db: Session = Depends(get_db)):
    ManagementService(db).delete_closure(restaurant_id, closure_id)


@app.get("/api/restaurants/{restaurant_id}/closed-dates", response_model=schemas.ClosedDatesResponse)
def get_closed_dates(restaurant_id: int, start: Optional[date] = None, days: int = 30,
                     db: Session = Depends(get_db)):
    """Dates the calendar should not offer"""
    store = DataStoreGateway(db)
    store.get_restaurant(restaurant_id)
    days = max(1, min(days, 366))
    return schemas.ClosedDatesResponse(
        closed_dates=closed_dates(store.closures(restaurant_id), start or date.today(), days)
    )


@app.post("/api/restaurants/{restaurant_id}/reservation-limits",
          response_model=schemas.ReservationLimit, status_code=201)
def add_reservation_limit(restaurant_id: int, data: schemas.ReservationLimitCreate,
                          db: Session = Depends(get_db)):
    return ManagementService(db).add_reservation_limit(restaurant_id, data)


@app.patch("/api/restaurants/{restaurant_id}/reservation-limits/{limit_id}",
           response_model=schemas.ReservationLimit)
def update_reservation_limit(restaurant_id: int, limit_id: int, data: schemas.ReservationLimitUpdate,
                             db: Session = Depends(get_db)):
    return ManagementService(db).update_reservation_limit(restaurant_id, limit_id, data.max_reservations)


@app.delete("/api/restaurants/{restaurant_id}/reservation-limits/{limit_id}", status_code=204)
def delete_reservation_limit(restaurant_id: int, limit_id: int, db: Session = Depends(get_db)):
    ManagementService(db).delete_reservation_limit(restaurant_id, limit_id)


# ---------------------------
# Availability
# ---------------------------

@app.get("/api/restaurants/{restaurant_id}/available-times", response_model=schemas.AvailableTimesResponse)
def get_available_times(restaurant_id: int, date: date, party_size: int, db: Session = Depends(get_db)):
    """Get available reservation times for a given date and party size"""
    result = ReservationService(db).bookable_slots(restaurant_id, date, party_size)
    return schemas.AvailableTimesResponse(
        date=date,
        party_size=party_size,
        fallback_mode=result.fallback_mode,
        available_times=result.slots,
    )


@app.get("/api/restaurants/{restaurant_id}/available-tables", response_model=schemas.AvailabilityResponse)
def get_available_tables(restaurant_id: int, date: date, time: str, party_size: int,
                         editing_reservation_id: Optional[int] = None, db: Session = Depends(get_db)):
    result = ReservationService(db).find_available_tables(
        restaurant_id, date, time, party_size, editing_reservation_id
    )
    return schemas.AvailabilityResponse(
        fallback_mode=result.fallback_mode,
        exact_match=result.exact_match,
        tables=[
            schemas.AvailableTable(
                table_id=option.table.id,
                table_number=option.table.table_number,
                capacity=option.capacity,
                table_type=option.table_type.name,
                position_description=option.table.position_description,
            )
            for option in result.tables
        ],
    )


# ---------------------------
# Reservations
# ---------------------------

@app.post("/api/reservations", response_model=schemas.ReservationResponse, status_code=201)
def create_reservation(reservation_data: schemas.ReservationCreate, db: Session = Depends(get_db)):
    """Create a new reservation"""
    reservation = ReservationService(db).commit_reservation(reservation_data)
    message = f"Your reservation for {reservation.party_size} on {reservation.date} at {reservation.time} is confirmed."
    if reservation.table is not None:
        message += f" Your table number is {reservation.table.table_number}."
    return schemas.ReservationResponse(
        success=True,
        message=message,
        reservation=reservation,
        cost=reservation.cost or 0,
    )


@app.get("/api/restaurants/{restaurant_id}/reservations", response_model=List[schemas.Reservation])
def list_reservations(restaurant_id: int, date: Optional[date] = None, include_cancelled: bool = False,
                      db: Session = Depends(get_db)):
    return ReservationService(db).list_reservations(restaurant_id, date, include_cancelled)


@app.delete("/api/reservations/{reservation_id}", response_model=schemas.Reservation)
def cancel_reservation(reservation_id: int, db: Session = Depends(get_db)):
    """Cancel a reservation"""
    return ReservationService(db).cancel_reservation(reservation_id)


@app.post("/api/reservations/{reservation_id}/seen", response_model=schemas.Reservation)
def mark_seen(reservation_id: int, db: Session = Depends(get_db)):
    return ReservationService(db).mark_seen(reservation_id)


@app.post("/api/reservations/{reservation_id}/attended", response_model=schemas.Reservation)
def mark_attended(reservation_id: int, data: schemas.AttendanceUpdate, db: Session = Depends(get_db)):
    return ReservationService(db).mark_attended(reservation_id, data.attended)


@app.put("/api/reservations/{reservation_id}/table", response_model=schemas.Reservation)
def reassign_table(reservation_id: int, data: schemas.TableAssignment, db: Session = Depends(get_db)):
    return ReservationService(db).reassign_table(reservation_id, data.table_id)


@app.post("/api/reminders/send", response_model=List[schemas.NoticeResult])
def send_reminders(db: Session = Depends(get_db)):
    results = ReservationService(db).send_reminders(window_minutes=settings.reminder_window_minutes)
    return [schemas.NoticeResult(reservation_id=rid, sent=sent) for rid, sent in results]


@app.post("/api/thank-you/send", response_model=List[schemas.NoticeResult])
def send_thank_you_emails(date: Optional[date] = None, db: Session = Depends(get_db)):
    """Thank guests who attended on ``date`` (yesterday by default)"""
    results = ReservationService(db).send_thank_you_emails(date)
    return [schemas.NoticeResult(reservation_id=rid, sent=sent) for rid, sent in results]


# ---------------------------
# Dashboard
# ---------------------------

@app.get("/api/restaurants/{restaurant_id}/analytics", response_model=schemas.AnalyticsSummary)
def get_analytics(restaurant_id: int, db: Session = Depends(get_db)):
    reservations = ReservationService(db).list_reservations(restaurant_id, include_cancelled=True)
    return summarize(reservations)


@app.get("/api/restaurants/{restaurant_id}/customers", response_model=List[schemas.Customer])
def list_customers(restaurant_id: int, db: Session = Depends(get_db)):
    """Guests of the restaurant, most recent visit first"""
    store = DataStoreGateway(db)
    store.get_restaurant(restaurant_id)
    with store.guarded("listing customers"):
        return db.query(Customer).filter(
            Customer.restaurant_id == restaurant_id
        ).order_by(Customer.last_visit.desc()).all()


@app.get("/api/restaurants/{restaurant_id}/campaigns", response_model=List[schemas.Campaign])
def list_campaigns(restaurant_id: int, db: Session = Depends(get_db)):
    return CampaignService(db).list_campaigns(restaurant_id)


@app.post("/api/restaurants/{restaurant_id}/campaigns", response_model=schemas.Campaign, status_code=201)
def send_campaign(restaurant_id: int, data: schemas.CampaignCreate, db: Session = Depends(get_db)):
    """Email every customer of the restaurant"""
    return CampaignService(db).send_campaign(restaurant_id, data.subject, data.body)
