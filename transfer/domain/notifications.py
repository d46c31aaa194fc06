"""Bilingual (Thai / English) notification templates for booking events."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .enums import BookingStatus


@dataclass(frozen=True)
class NotificationContent:
    kind: str
    title_th: str
    title_en: str
    body_th: str
    body_en: str


def short_ref(booking_id: int) -> str:
    return f"#{booking_id:06d}"


def status_notification(
    status: BookingStatus,
    booking_id: int,
    driver_name: Optional[str] = None,
    vehicle_plate: Optional[str] = None,
) -> NotificationContent:
    """Customer-facing message for a booking entering *status*."""
    ref = short_ref(booking_id)
    name = driver_name or ""
    plate = vehicle_plate or ""

    templates = {
        BookingStatus.CONFIRMED: (
            "ยืนยันการจองแล้ว!", "Booking Confirmed!",
            f"การจอง {ref} ได้รับการยืนยันแล้ว",
            f"Booking {ref} has been confirmed",
        ),
        BookingStatus.DRIVER_ASSIGNED: (
            "มอบหมายคนขับแล้ว", "Driver Assigned",
            f"คนขับ {name} ทะเบียน {plate} จะมารับคุณ",
            f"Driver {name} ({plate}) will pick you up",
        ),
        BookingStatus.DRIVER_EN_ROUTE: (
            "คนขับกำลังมา!", "Driver On The Way!",
            f"{name or 'คนขับ'} กำลังเดินทางมารับคุณแล้ว",
            f"{name or 'Your driver'} is on the way to pick you up",
        ),
        BookingStatus.IN_PROGRESS: (
            "เริ่มเดินทางแล้ว", "Trip Started",
            "ขอให้เดินทางปลอดภัย!",
            "Have a safe trip!",
        ),
        BookingStatus.COMPLETED: (
            "เดินทางเสร็จสิ้น", "Trip Completed",
            "ขอบคุณที่ใช้บริการ!",
            "Thank you for riding with us!",
        ),
        BookingStatus.CANCELLED: (
            "ยกเลิกการจอง", "Booking Cancelled",
            f"การจอง {ref} ถูกยกเลิกแล้ว",
            f"Booking {ref} has been cancelled",
        ),
        BookingStatus.NO_SHOW: (
            "การจองถูกยกเลิก", "Marked As No-Show",
            "คุณไม่ได้มาขึ้นรถตามเวลานัดหมาย",
            "You did not show up at the pickup point",
        ),
    }
    default = (
        "อัปเดตการจอง", "Booking Update",
        f"สถานะการจอง {ref} มีการเปลี่ยนแปลง",
        f"Booking {ref} status has been updated",
    )
    title_th, title_en, body_th, body_en = templates.get(status, default)
    return NotificationContent(
        kind=f"booking_{status.value}",
        title_th=title_th,
        title_en=title_en,
        body_th=body_th,
        body_en=body_en,
    )


def driver_job_assigned(booking_id: int, pickup: str, dropoff: str) -> NotificationContent:
    return NotificationContent(
        kind="job_assigned",
        title_th="มีงานใหม่!",
        title_en="New Job!",
        body_th=f"{pickup} → {dropoff}",
        body_en=f"{pickup} → {dropoff} ({short_ref(booking_id)})",
    )


def driver_job_cancelled(booking_id: int, pickup: str, dropoff: str) -> NotificationContent:
    return NotificationContent(
        kind="job_cancelled",
        title_th="งานถูกยกเลิก",
        title_en="Job Cancelled",
        body_th=f"ลูกค้ายกเลิกการจอง: {pickup} → {dropoff}",
        body_en=f"The customer cancelled {short_ref(booking_id)}: {pickup} → {dropoff}",
    )


def payment_received(booking_id: int) -> NotificationContent:
    ref = short_ref(booking_id)
    return NotificationContent(
        kind="payment_received",
        title_th="ชำระเงินสำเร็จ",
        title_en="Payment Received",
        body_th=f"ชำระเงินสำหรับการจอง {ref} เรียบร้อยแล้ว",
        body_en=f"Payment for booking {ref} has been received",
    )


def driver_arrived(booking_id: int) -> NotificationContent:
    return NotificationContent(
        kind="driver_arrived",
        title_th="คนขับถึงแล้ว",
        title_en="Your Driver Has Arrived",
        body_th="คนขับถึงจุดรับแล้ว กรุณาออกมาขึ้นรถ",
        body_en=f"Your driver is waiting at the pickup point ({short_ref(booking_id)})",
    )


def dispute_updated(booking_id: int, dispute_status: str) -> NotificationContent:
    ref = short_ref(booking_id)
    return NotificationContent(
        kind=f"dispute_{dispute_status}",
        title_th="อัปเดตข้อร้องเรียน",
        title_en="Dispute Update",
        body_th=f"ข้อร้องเรียนของการจอง {ref}: {dispute_status}",
        body_en=f"Your dispute for booking {ref} is now {dispute_status}",
    )
