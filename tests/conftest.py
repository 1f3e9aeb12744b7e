import pytest

from spotswitch.config import SpotSwitchSettings


@pytest.fixture
def settings(tmp_path) -> SpotSwitchSettings:
    return SpotSwitchSettings(
        shelly_host="shelly.local",
        data_dir=str(tmp_path),
        timezone="Europe/Vienna",
        callback_url="http://spotswitch.local:8000",
        instance_id="plug-1",
        switch_on_duration=4,
        time_window_start_hour=7,
        time_window_end_hour=19,
    )
