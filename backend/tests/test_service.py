import threading

import pytest

from chemistry.game.errors import (
    Forbidden,
    GameError,
    GameNotInProgress,
    NotEnoughPlayers,
    PlayerNotFound,
    PlayersNotReady,
    RoomFull,
    RoomNotFound,
)
from chemistry.game.service import ROOM_ID_ALPHABET, GameService, now_ms


def _room_with_players(service, count=2):
    room, creator = service.create_room("Alice", "sid-0", "en", "p0")
    for i in range(1, count):
        service.join_room(room.id, f"P{i}", f"sid-{i}", f"p{i}")
    return room.id, creator


def _play_to_end(service, room_id):
    service.start_game(room_id, "p0")
    game_over = False
    while not game_over:
        _, game_over = service.next_round(room_id)


def test_create_room(service):
    room, player = service.create_room("Alice", "sid-0", "id", "p0")
    assert len(room.id) == 4
    assert all(c in ROOM_ID_ALPHABET for c in room.id)
    assert room.state == "LOBBY"
    assert room.language == "id"
    assert player.is_creator and player.is_ready
    assert room.players == [player]
    assert service.get_room_public(room.id) is room


def test_create_room_generates_player_id(service):
    _, player = service.create_room("Alice", "sid-0")
    assert player.id


def test_single_creator_survives_game_cycle(service):
    room_id, _ = _room_with_players(service, 3)
    _play_to_end(service, room_id)
    for pid in ("p0", "p1", "p2"):
        service.player_ready(room_id, pid)
    room = service.check_and_switch_to_lobby(room_id)
    creators = [p for p in room.players if p.is_creator]
    assert [p.id for p in creators] == ["p0"]


def test_join_unknown_room(service):
    with pytest.raises(RoomNotFound):
        service.join_room("ZZZZ", "Bob", "sid-1")


def test_join_full_room():
    service = GameService(max_players=2)
    room_id, _ = _room_with_players(service, 2)
    with pytest.raises(RoomFull):
        service.join_room(room_id, "Cara", "sid-9", "p9")


def test_rejoin_updates_existing_player(service):
    room_id, _ = _room_with_players(service, 2)
    service.disconnect_player("sid-1")
    room, player = service.join_room(room_id, "Bobby", "sid-new", "p1")
    assert player.name == "Bobby"
    assert player.connection_ref == "sid-new"
    assert player.is_connected
    assert len(room.players) == 2


def test_join_while_playing_lands_in_spectators(service):
    room_id, _ = _room_with_players(service, 2)
    service.start_game(room_id, "p0")
    room, player = service.join_room(room_id, "Cara", "sid-2", "p2")
    assert player in room.spectators
    assert player not in room.players
    assert len(room.players) == 2


def test_reconnect_by_scan(service):
    room_id, _ = _room_with_players(service, 2)
    service.disconnect_player("sid-1")
    room, player = service.reconnect_player("p1", "sid-77")
    assert room.id == room_id
    assert player.connection_ref == "sid-77"
    assert player.is_connected


def test_reconnect_spectator(service):
    room_id, _ = _room_with_players(service, 2)
    service.start_game(room_id, "p0")
    service.join_room(room_id, "Cara", "sid-2", "p2")
    room, player = service.reconnect_player("p2", "sid-88")
    assert player in room.spectators


def test_reconnect_unknown_player(service):
    _room_with_players(service, 2)
    with pytest.raises(PlayerNotFound):
        service.reconnect_player("ghost", "sid-x")


def test_disconnect_marks_but_keeps_member(service):
    room_id, _ = _room_with_players(service, 2)
    assert service.disconnect_player("sid-1") == (room_id, "p1")
    room = service.get_room_public(room_id)
    player = room.find_player("p1")
    assert player is not None
    assert not player.is_connected


def test_disconnect_unknown_connection(service):
    _room_with_players(service, 2)
    assert service.disconnect_player("nobody") is None


def test_kick_requires_creator(service):
    room_id, _ = _room_with_players(service, 2)
    with pytest.raises(Forbidden):
        service.kick_player(room_id, "p1", "p0")


def test_kick_removes_target(service):
    room_id, _ = _room_with_players(service, 2)
    room, kicked = service.kick_player(room_id, "p0", "p1")
    assert kicked == "p1"
    assert room.find_member("p1") is None


def test_kick_spectator(service):
    room_id, _ = _room_with_players(service, 2)
    service.start_game(room_id, "p0")
    service.join_room(room_id, "Cara", "sid-2", "p2")
    room, _ = service.kick_player(room_id, "p0", "p2")
    assert room.spectators == []


def test_kick_missing_target_is_noop(service):
    room_id, _ = _room_with_players(service, 2)
    room, kicked = service.kick_player(room_id, "p0", "ghost")
    assert kicked == "ghost"
    assert len(room.players) == 2


def test_creator_leaving_destroys_room(service):
    room_id, _ = _room_with_players(service, 2)
    room, destroyed = service.leave_room(room_id, "p0")
    assert destroyed
    assert room is None
    assert service.get_room_public(room_id) is None


def test_player_leaving_keeps_room(service):
    room_id, _ = _room_with_players(service, 3)
    room, destroyed = service.leave_room(room_id, "p2")
    assert not destroyed
    assert [p.id for p in room.players] == ["p0", "p1"]


def test_leave_unknown_player(service):
    room_id, _ = _room_with_players(service, 2)
    with pytest.raises(PlayerNotFound):
        service.leave_room(room_id, "ghost")


def test_player_ready_is_idempotent(service):
    room_id, _ = _room_with_players(service, 2)
    _play_to_end(service, room_id)
    once = service.player_ready(room_id, "p1").find_player("p1").status
    twice = service.player_ready(room_id, "p1").find_player("p1").status
    assert once == twice == "idle"


def test_player_ready_unknown_room(service):
    with pytest.raises(RoomNotFound):
        service.player_ready("ZZZZ", "p1")


def test_start_game_alone(service):
    room, creator = service.create_room("Alice", "sid-0", "en", "p0")
    with pytest.raises(NotEnoughPlayers):
        service.start_game(room.id, creator.id)


def test_start_game_by_non_creator(service):
    room_id, _ = _room_with_players(service, 2)
    with pytest.raises(Forbidden):
        service.start_game(room_id, "p1")


def test_start_game_resets_round_state(service):
    room_id, _ = _room_with_players(service, 3)
    room = service.start_game(room_id, "p0")
    assert room.state == "PLAYING"
    assert len(room.words) == service.words_per_game
    assert len(set(room.words)) == len(room.words)
    assert room.current_word_index == 0
    assert room.current_answers == {}
    assert all(p.score == 0 for p in room.players)
    assert all(not p.is_ready for p in room.players)


def test_start_game_waits_for_results_acknowledgement(service):
    room_id, _ = _room_with_players(service, 2)
    _play_to_end(service, room_id)
    service.player_ready(room_id, "p0")
    with pytest.raises(PlayersNotReady):
        service.start_game(room_id, "p0")


def test_submit_answer_requires_game(service):
    room_id, _ = _room_with_players(service, 2)
    with pytest.raises(GameNotInProgress):
        service.submit_answer(room_id, "p0", "fruit")


def test_submit_answer_from_spectator(service):
    room_id, _ = _room_with_players(service, 2)
    service.start_game(room_id, "p0")
    service.join_room(room_id, "Cara", "sid-2", "p2")
    with pytest.raises(PlayerNotFound):
        service.submit_answer(room_id, "p2", "fruit")


def test_all_answered_ignores_disconnected(service):
    room_id, _ = _room_with_players(service, 3)
    service.start_game(room_id, "p0")
    _, done = service.submit_answer(room_id, "p0", "fruit")
    assert not done
    service.disconnect_player("sid-2")
    _, done = service.submit_answer(room_id, "p1", "tree")
    assert done


def test_resubmit_overwrites(service):
    room_id, _ = _room_with_players(service, 2)
    service.start_game(room_id, "p0")
    service.submit_answer(room_id, "p0", "fruit")
    room, _ = service.submit_answer(room_id, "p0", " Tree ")
    assert room.current_answers == {"p0": " Tree "}


def test_matching_answers_score(service):
    room_id, _ = _room_with_players(service, 2)
    service.start_game(room_id, "p0")
    service.submit_answer(room_id, "p0", "Apple")
    service.submit_answer(room_id, "p1", "  apple ")
    room, match, word = service.calculate_round_results(room_id)
    assert match
    assert word == room.words[0]
    assert [p.score for p in room.players] == [1, 1]


def test_different_answers_do_not_score(service):
    room_id, _ = _room_with_players(service, 2)
    service.start_game(room_id, "p0")
    service.submit_answer(room_id, "p0", "Apple")
    service.submit_answer(room_id, "p1", "Orange")
    room, match, _ = service.calculate_round_results(room_id)
    assert not match
    assert [p.score for p in room.players] == [0, 0]


def test_no_answers_never_match(service):
    room_id, _ = _room_with_players(service, 2)
    service.start_game(room_id, "p0")
    _, match, _ = service.calculate_round_results(room_id)
    assert not match


def test_only_answering_players_score(service):
    room_id, _ = _room_with_players(service, 3)
    service.start_game(room_id, "p0")
    service.disconnect_player("sid-2")
    service.submit_answer(room_id, "p0", "rain")
    service.submit_answer(room_id, "p1", "RAIN")
    room, match, _ = service.calculate_round_results(room_id)
    assert match
    assert room.find_player("p2").score == 0


def test_next_round_advances(service):
    room_id, _ = _room_with_players(service, 2)
    service.start_game(room_id, "p0")
    service.submit_answer(room_id, "p0", "x")
    room, game_over = service.next_round(room_id)
    assert not game_over
    assert room.current_word_index == 1
    assert room.current_answers == {}


def test_last_round_ends_game(service):
    room_id, _ = _room_with_players(service, 2)
    room = service.start_game(room_id, "p0")
    room.current_word_index = len(room.words) - 1
    room, game_over = service.next_round(room_id)
    assert game_over
    assert room.state == "ENDED"
    assert all(not p.is_ready for p in room.players)
    assert all(p.status == "awaiting_lobby" for p in room.players)


def test_next_round_requester_must_be_creator(service):
    room_id, _ = _room_with_players(service, 2)
    service.start_game(room_id, "p0")
    with pytest.raises(Forbidden):
        service.next_round(room_id, "p1")


def test_switch_to_lobby_waits_for_everyone(service):
    room_id, _ = _room_with_players(service, 2)
    _play_to_end(service, room_id)
    service.player_ready(room_id, "p0")
    room = service.check_and_switch_to_lobby(room_id)
    assert room.state == "ENDED"


def test_switch_to_lobby_is_noop_outside_ended(service):
    room_id, _ = _room_with_players(service, 2)
    service.start_game(room_id, "p0")
    room = service.check_and_switch_to_lobby(room_id)
    assert room.state == "PLAYING"


def test_switch_to_lobby_merges_spectators(service):
    room_id, _ = _room_with_players(service, 2)
    service.start_game(room_id, "p0")
    service.join_room(room_id, "Cara", "sid-2", "p2")
    game_over = False
    while not game_over:
        _, game_over = service.next_round(room_id)
    service.player_ready(room_id, "p0")
    service.player_ready(room_id, "p1")
    room = service.check_and_switch_to_lobby(room_id)
    assert room.state == "LOBBY"
    assert [p.id for p in room.players] == ["p0", "p1", "p2"]
    assert room.spectators == []
    assert room.words == []
    assert room.current_word_index == 0
    assert all(p.is_ready for p in room.players)


def test_cleanup_removes_only_stale_rooms():
    service = GameService(inactivity_timeout_sec=60)
    stale, _ = service.create_room("Alice", "sid-0")
    fresh, _ = service.create_room("Bob", "sid-1")
    stale.last_activity = now_ms() - 61_000
    assert service.cleanup_inactive_rooms() == 1
    assert service.get_room_public(stale.id) is None
    assert service.get_room_public(fresh.id) is fresh


def test_room_codes_are_unique(service):
    codes = {service.create_room(f"P{i}", f"sid-{i}")[0].id for i in range(50)}
    assert len(codes) == 50


def test_room_code_exhaustion(monkeypatch):
    service = GameService(room_id_max_attempts=3)
    monkeypatch.setattr("chemistry.game.service.random.choices", lambda alphabet, k: ["A"] * k)
    service.create_room("Alice", "sid-0")
    with pytest.raises(GameError, match="Could not allocate a room code"):
        service.create_room("Bob", "sid-1")


def test_locks_are_not_kept_for_unknown_rooms(service):
    for i in range(100):
        with pytest.raises(RoomNotFound):
            service.join_room(f"X{i:03d}", "Bob", f"sid-{i}")
    assert service._room_locks == {}

    room_id, _ = _room_with_players(service, 2)
    assert list(service._room_locks) == [room_id]
    service.leave_room(room_id, "p0")
    assert service._room_locks == {}


def _run_concurrently(target, count):
    barrier = threading.Barrier(count)
    errors = []

    def worker(i):
        barrier.wait()
        try:
            target(i)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return errors


def test_concurrent_joins_and_answers_are_not_lost():
    service = GameService(max_players=40)
    room, _ = service.create_room("Alice", "sid-0", "en", "p0")

    errors = _run_concurrently(
        lambda i: service.join_room(room.id, f"P{i}", f"sid-{i + 1}", f"p{i + 1}"), 30
    )
    assert errors == []
    room = service.get_room_public(room.id)
    assert len(room.players) == 31
    assert len({p.id for p in room.players}) == 31

    service.start_game(room.id, "p0")
    errors = _run_concurrently(
        lambda i: service.submit_answer(room.id, f"p{i + 1}", f"answer {i}"), 30
    )
    assert errors == []
    answers = service.get_room_public(room.id).current_answers
    assert answers == {f"p{i + 1}": f"answer {i}" for i in range(30)}
