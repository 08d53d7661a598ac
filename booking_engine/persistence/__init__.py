from booking_engine.persistence.repository import BookingRepository, InMemoryBookingRepository
from booking_engine.persistence.supabase_repository import SupabaseBookingRepository

__all__ = ["BookingRepository", "InMemoryBookingRepository", "SupabaseBookingRepository"]
