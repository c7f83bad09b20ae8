"""
Tests for the Playlist and PlaylistItem models.
"""

import json
from unittest import mock

import pytest

from src.player.playlist import MediaType, Orientation, Playlist, PlaylistItem

from conftest import make_item, make_playlist


@pytest.fixture
def mixed_playlist():
    """Image, disabled image, video."""
    return Playlist.from_dict(make_playlist([
        make_item('a.jpg', duration=5),
        make_item('b.jpg', disabled=True),
        make_item('c.mp4', file_type='Video', duration=0),
    ]))


class TestPlaylistItem:
    """Tests for PlaylistItem parsing."""

    def test_from_dict_maps_wire_keys(self):
        """Test camelCase keys map to attributes."""
        item = PlaylistItem.from_dict({
            'mediafileId': 7,
            'filename': 'promo.jpg',
            'downloadUrl': 'https://cdn.example.com/promo.jpg',
            'displayDuration': 12,
            'fileType': 'Image',
            'transitionSpeed': 400,
        })
        assert item.media_id == 7
        assert item.filename == 'promo.jpg'
        assert item.download_url == 'https://cdn.example.com/promo.jpg'
        assert item.display_duration == 12
        assert item.transition_speed == 400
        assert item.media_type is MediaType.IMAGE

    def test_unknown_keys_ignored(self):
        """Test unknown keys do not break parsing."""
        item = PlaylistItem.from_dict({'filename': 'x.jpg', 'fileType': 'Image', 'extra': 1})
        assert item.filename == 'x.jpg'

    def test_null_strings_become_empty(self):
        """Test null string fields are treated as empty."""
        item = PlaylistItem.from_dict({'filename': None, 'fileType': None})
        assert item.filename == ''
        assert item.media_type is None

    def test_invalid_image_duration_uses_default(self):
        """Test non-positive image durations fall back to the default."""
        for bad in (0, -3, None, 'soon'):
            item = PlaylistItem.from_dict(make_item('a.jpg', duration=bad))
            assert item.display_duration == PlaylistItem.DEFAULT_DISPLAY_DURATION

    def test_numeric_string_duration_parsed(self):
        """Test a numeric string duration is accepted."""
        item = PlaylistItem.from_dict(make_item('a.jpg', duration='7.5'))
        assert item.display_duration == 7.5

    def test_video_duration_not_coerced(self):
        """Test videos keep whatever duration they carry."""
        item = PlaylistItem.from_dict(make_item('v.mp4', file_type='Video', duration=0))
        assert item.display_duration == 0

    def test_disabled_string_flag(self):
        """Test string disabled flags are interpreted."""
        assert PlaylistItem.from_dict({'disabled': 'true'}).disabled is True
        assert PlaylistItem.from_dict({'disabled': 'false'}).disabled is False

    def test_unsupported_type(self):
        """Test unknown file types have no media type."""
        item = PlaylistItem.from_dict(make_item('page', file_type='Web'))
        assert item.media_type is None


class TestPlaylistRotation:
    """Tests for the active-item cursor."""

    def test_initialize_skips_disabled(self, mixed_playlist):
        """Test initialize builds active indexes from enabled items."""
        mixed_playlist.initialize()
        assert mixed_playlist.active_indexes == [0, 2]
        assert mixed_playlist.active_count == 2
        assert mixed_playlist.get_current_playlist_item().filename == 'a.jpg'
        assert mixed_playlist.get_next_playlist_item().filename == 'c.mp4'

    def test_increment_wraps(self, mixed_playlist):
        """Test the cursor cycles through active items."""
        mixed_playlist.initialize()
        seen = []
        for _ in range(4):
            seen.append(mixed_playlist.get_current_playlist_item().filename)
            mixed_playlist.increment_cur_pos()
        assert seen == ['a.jpg', 'c.mp4', 'a.jpg', 'c.mp4']

    def test_initialize_resets_cursor(self, mixed_playlist):
        """Test initialize starts over from the first item."""
        mixed_playlist.initialize()
        mixed_playlist.increment_cur_pos()
        mixed_playlist.initialize()
        assert mixed_playlist.get_current_playlist_item().filename == 'a.jpg'

    def test_all_disabled(self):
        """Test a playlist with no enabled items."""
        playlist = Playlist.from_dict(make_playlist([make_item('a.jpg', disabled=True)]))
        assert playlist.has_items_to_display() is False
        playlist.initialize()
        assert playlist.get_current_playlist_item() is None
        assert playlist.get_next_playlist_item() is None
        playlist.increment_cur_pos()
        assert playlist.get_current_playlist_item() is None

    def test_empty_playlist(self):
        """Test an empty playlist has nothing to display."""
        playlist = Playlist.from_dict({})
        assert playlist.items == []
        assert playlist.has_items_to_display() is False

    def test_single_item_repeats(self):
        """Test a single active item is current on every step."""
        playlist = Playlist.from_dict(make_playlist([make_item('only.jpg')], shufflePlay=True))
        playlist.initialize()
        for _ in range(3):
            assert playlist.get_current_playlist_item().filename == 'only.jpg'
            playlist.increment_cur_pos()


class TestPlaylistShuffle:
    """Tests for shuffled rotation."""

    def test_shuffle_never_repeats_across_wrap(self):
        """Test the same item is never current twice in a row."""
        playlist = Playlist.from_dict(make_playlist(
            [make_item(f'{name}.jpg') for name in 'abc'],
            shufflePlay=True
        ))
        playlist.initialize()

        previous = None
        for _ in range(60):
            current = playlist.get_current_playlist_item().filename
            assert current != previous
            previous = current
            playlist.increment_cur_pos()

    def test_shuffle_covers_every_item_per_pass(self):
        """Test each pass shows every active item once."""
        playlist = Playlist.from_dict(make_playlist(
            [make_item(f'{name}.jpg') for name in 'abcd'],
            shufflePlay=True
        ))
        playlist.initialize()

        shown = []
        for _ in range(4):
            shown.append(playlist.get_current_playlist_item().filename)
            playlist.increment_cur_pos()
        assert sorted(shown) == ['a.jpg', 'b.jpg', 'c.jpg', 'd.jpg']

    def test_shuffle_bounded_with_swap_fallback(self):
        """Test shuffle gives up retrying and swaps the repeated item away."""
        playlist = Playlist.from_dict(make_playlist(
            [make_item(f'{name}.jpg') for name in 'abc']
        ))
        playlist.active_indexes = [0, 1, 2]
        playlist.prev_index = 1

        def always_first(indexes):
            indexes.sort(key=lambda i: i != 1)

        with mock.patch('src.player.playlist.random.shuffle', side_effect=always_first) as shuffle:
            playlist.shuffle_items()

        assert shuffle.call_count == Playlist.MAX_SHUFFLE_ATTEMPTS
        assert playlist.active_indexes[0] != 1
        assert sorted(playlist.active_indexes) == [0, 1, 2]

    def test_wrap_reshuffle_keeps_current_item(self):
        """Test reshuffling on wraparound does not change the item on screen."""
        playlist = Playlist.from_dict(make_playlist(
            [make_item(f'{name}.jpg') for name in 'abc'],
            shufflePlay=True
        ))
        playlist.initialize()
        playlist.increment_cur_pos()
        playlist.increment_cur_pos()  # last of the pass; reshuffles

        last = playlist.items[playlist.prev_index].filename
        assert playlist.get_current_playlist_item().filename == last
        assert playlist.get_next_playlist_item().filename != last


class TestPlaylistEquality:
    """Tests for content comparison."""

    def test_equal_content(self):
        """Test playlists with the same content are equal."""
        payload = make_playlist([make_item('a.jpg'), make_item('b.mp4', file_type='Video')])
        assert Playlist.from_dict(payload).equals(Playlist.from_dict(payload))

    def test_descriptive_fields_ignored(self):
        """Test title, type, size, orientation and download URL do not matter."""
        first = make_playlist([make_item('a.jpg', title='Old', downloadUrl='u1', fileSize=1)])
        second = make_playlist([make_item('a.jpg', title='New', downloadUrl='u2', fileSize=2,
                                          orientation='portrait')])
        assert Playlist.from_dict(first).equals(Playlist.from_dict(second))

    def test_item_change_detected(self):
        """Test a changed duration makes playlists differ."""
        first = Playlist.from_dict(make_playlist([make_item('a.jpg', duration=5)]))
        second = Playlist.from_dict(make_playlist([make_item('a.jpg', duration=6)]))
        assert not first.equals(second)
        assert 'display_duration' in first.diff(second)

    def test_policy_change_detected(self):
        """Test a changed check interval makes playlists differ."""
        first = Playlist.from_dict(make_playlist([make_item('a.jpg')]))
        second = Playlist.from_dict(make_playlist([make_item('a.jpg')], checkForUpdatesInterval=30))
        assert not first.equals(second)

    def test_item_count_detected(self):
        """Test an added item makes playlists differ."""
        first = Playlist.from_dict(make_playlist([make_item('a.jpg')]))
        second = Playlist.from_dict(make_playlist([make_item('a.jpg'), make_item('b.jpg')]))
        assert first.diff(second) == 'item count: 1 != 2'

    def test_rotation_state_ignored(self, mixed_playlist):
        """Test cursor position does not affect equality."""
        other = Playlist.from_dict(mixed_playlist.to_dict())
        mixed_playlist.initialize()
        mixed_playlist.increment_cur_pos()
        assert mixed_playlist.equals(other)

    def test_none_never_equal(self, mixed_playlist):
        """Test comparing with nothing."""
        assert mixed_playlist.equals(None) is False


class TestPlaylistSerialization:
    """Tests for persistence format."""

    def test_json_keeps_content_and_drops_rotation(self, mixed_playlist):
        """Test a reloaded playlist matches and starts from a fresh cursor."""
        mixed_playlist.initialize()
        mixed_playlist.increment_cur_pos()

        blob = mixed_playlist.to_json()
        assert 'curPos' not in json.loads(blob)

        restored = Playlist.from_json(blob)
        assert restored.equals(mixed_playlist)
        assert restored.active_indexes == []
        assert restored.prev_index == -1

    def test_rotation_keys_in_input_ignored(self):
        """Test stored rotation keys are not trusted."""
        payload = make_playlist([make_item('a.jpg')], curPos=5, activeIndexes=[9])
        playlist = Playlist.from_dict(payload)
        assert playlist.cur_pos == 0
        assert playlist.active_indexes == []

    @pytest.mark.parametrize('data', ["a string", [], {'items': 'a.jpg'}, {'items': [1]}, {'items': [None]}])
    def test_wrong_shape_rejected(self, data):
        """Test JSON that is not a playlist raises ValueError."""
        with pytest.raises(ValueError):
            Playlist.from_dict(data)

    def test_from_json_non_object(self):
        """Test a persisted blob holding a bare string raises ValueError."""
        with pytest.raises(ValueError):
            Playlist.from_json('"just a string"')

    def test_missing_items_is_empty(self):
        """Test absent or null items give an empty playlist."""
        assert Playlist.from_dict({}).items == []
        assert Playlist.from_dict({'items': None}).items == []

    def test_orientation_angle(self):
        """Test orientation maps to a rotation angle."""
        assert Orientation.PORTRAIT.angle == 90
        playlist = Playlist.from_dict(make_playlist([], orientation='reverse_landscape'))
        assert playlist.get_orientation_angle() == 180
        assert Playlist.from_dict(make_playlist([], orientation='sideways')).get_orientation_angle() == 0

    def test_playlist_info(self, mixed_playlist):
        """Test the status summary."""
        mixed_playlist.initialize()
        info = mixed_playlist.get_playlist_info()
        assert info['items'] == 3
        assert info['active_items'] == 2
        assert info['current_filename'] == 'a.jpg'
