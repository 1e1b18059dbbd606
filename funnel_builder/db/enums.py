from enum import Enum


class ProjectStatusEnum(str, Enum):
    draft = "draft"
    active = "active"
    archived = "archived"


class IntakeMethodEnum(str, Enum):
    voice = "voice"
    paste = "paste"
    upload = "upload"
    scrape = "scrape"


class OfferTypeEnum(str, Enum):
    main = "main"
    upsell = "upsell"
    downsell = "downsell"


class PathwayTypeEnum(str, Enum):
    direct_purchase = "direct_purchase"
    book_call = "book_call"


class PresentationStatusEnum(str, Enum):
    draft = "draft"
    generating = "generating"
    completed = "completed"
    failed = "failed"


class VideoProcessingStatusEnum(str, Enum):
    uploaded = "uploaded"
    processing = "processing"
    ready = "ready"
    failed = "failed"


class FunnelNodeTypeEnum(str, Enum):
    traffic_source = "traffic_source"
    registration = "registration"
    registration_confirmation = "registration_confirmation"
    masterclass = "masterclass"
    core_offer = "core_offer"
    checkout = "checkout"
    upsell_1 = "upsell_1"
    upsell_2 = "upsell_2"
    order_bump = "order_bump"
    call_booking = "call_booking"
    call_booking_confirmation = "call_booking_confirmation"
    sales_call = "sales_call"
    thank_you = "thank_you"


class FunnelNodeStatusEnum(str, Enum):
    draft = "draft"
    in_progress = "in_progress"
    refined = "refined"
    completed = "completed"


class SegmentEnum(str, Enum):
    no_show = "no_show"
    skimmer = "skimmer"
    sampler = "sampler"
    engaged = "engaged"
    hot = "hot"


class ConsentStateEnum(str, Enum):
    opt_in = "opt_in"
    implied = "implied"
    opted_out = "opted_out"
    bounced = "bounced"
    complained = "complained"


class ChannelEnum(str, Enum):
    email = "email"
    sms = "sms"


class DeliveryStatusEnum(str, Enum):
    pending = "pending"
    sent = "sent"
    delivered = "delivered"
    opened = "opened"
    clicked = "clicked"
    replied = "replied"
    bounced = "bounced"
    complained = "complained"
    failed = "failed"


class EngagementLevelEnum(str, Enum):
    cold = "cold"
    warm = "warm"
    hot = "hot"


class NpsSurveyTypeEnum(str, Enum):
    quarterly = "quarterly"
    milestone = "milestone"
    churn_prevention = "churn_prevention"
