#!/usr/bin/env python3
"""
Simple database viewer for TableBook
Shows restaurants, tables, and reservations with a per-restaurant summary
"""

from tablebook.analytics import summarize
from tablebook.database import SessionLocal, init_db
from tablebook.models import Reservation, Restaurant, Table


def view_database():
    """View all database contents"""
    init_db()
    db = SessionLocal()

    print("🍽️ TableBook - Database Viewer")
    print("=" * 60)

    try:
        for restaurant in db.query(Restaurant).order_by(Restaurant.id).all():
            print(f"\n📍 RESTAURANT {restaurant.id}: {restaurant.name}")
            print("-" * 30)
            print(f"Window: {restaurant.reservation_start_time}-{restaurant.reservation_end_time} "
                  f"every {restaurant.reservation_duration_minutes} min ({restaurant.slot_mode} slots)")

            # View Tables
            print("\n🪑 TABLES:")
            tables = db.query(Table).filter(Table.restaurant_id == restaurant.id).order_by(Table.table_number).all()
            if not tables:
                print("No tables configured (fallback mode).")
            for table in tables:
                print(f"ID: {table.id}, Table: {table.table_number}, Capacity: {table.table_type.capacity}, "
                      f"Type: {table.table_type.name}, Status: {table.status}")

            # View Reservations
            print("\n📅 RESERVATIONS:")
            reservations = db.query(Reservation).filter(
                Reservation.restaurant_id == restaurant.id
            ).order_by(Reservation.date, Reservation.time).all()
            if reservations:
                print(f"{'ID':<4} {'Name':<15} {'Email':<25} {'Party':<5} {'Date':<12} {'Time':<6} {'Table':<6} {'State':<10}")
                print("-" * 90)
                for res in reservations:
                    state = "cancelled" if res.cancelled else ("attended" if res.attended else "booked")
                    table = res.table.table_number if res.table else "-"
                    print(f"{res.id:<4} {res.name[:15]:<15} {res.email[:25]:<25} {res.party_size:<5} "
                          f"{res.date.isoformat():<12} {res.time:<6} {table:<6} {state:<10}")
            else:
                print("No reservations found.")

            # Summary
            stats = summarize(reservations)
            print("\n📊 SUMMARY:")
            print(f"Total Reservations: {stats['total_reservations']}")
            print(f"Cancelled: {stats['cancelled']}")
            print(f"Attended: {stats['attended']}")
            print(f"Revenue: {restaurant.currency} {stats['revenue']}")
            print(f"Peak hour: {stats['peak_hour'] or 'N/A'}")
    finally:
        db.close()


if __name__ == "__main__":
    view_database()
