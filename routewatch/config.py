"""Configuration settings for routewatch."""

CONFIG = {
    "gps_poll_interval": 1,  # seconds between termux-location fixes
    "gps_fix_timeout": 10,  # seconds - give up on a single fix after this long
    # Deviation escalation (per episode)
    "deviation_alternative_after": 30,  # seconds off-route before suggesting an alternative
    "deviation_recalculate_after": 60,  # seconds off-route before forcing a recalculation
    # Transport mode classifier
    "speed_window": 5,  # samples averaged for the mode estimate
    "mode_confirm_samples": 3,  # consecutive agreeing estimates before the mode changes
    "walking_max_speed": 2.0,  # m/s - mean below this is walking
    "cycling_max_speed": 8.0,  # m/s - mean below this (and above walking) is cycling
    "driving_min_speed": 10.0,  # m/s - mean above this is driving; 8-10 m/s is a dead band
    "auto_detect_transport_mode": True,  # apply detected mode changes, or only report them
    # Wrong-way alerts
    "wrong_way_cooldown": 10,  # seconds between repeat alerts while still wrong-way; None disables
    # Alternative routes
    "alternatives_retry_interval": 15,  # seconds before retrying after a provider failure
    "osrm_base_url": "https://router.project-osrm.org",
    "osrm_timeout": 10,  # seconds
    # Logging
    "log_level": "info",
    "log_interval": 10,  # seconds between STATE log entries in the CLI
    # Debug GUI
    "debug_http_port": 8080,
    "debug_ws_port": 8765,
}
