from .dates import (
    format_local_date,
    parse_local_date,
    add_local_days,
    diff_local_days,
    local_datetime_to_iso,
    local_date_of,
    is_weekend_day,
    count_weekend_days,
    rental_days_between,
    to_aware,
    ranges_overlap,
)
