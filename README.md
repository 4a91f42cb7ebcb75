# gamedig

Building blocks for querying game servers:

- `gamedig.errors`: the `GDError` exception and the `ErrorKind` enumeration
  of what can go wrong during a query (bad or short packets, socket
  failures, parse errors, unknown hosts and so on).
- `gamedig.buffer`: a `Buffer` that reads little- or big-endian integers,
  floats and strings out of received packet data, with `Utf8Decoder`,
  `Utf8LengthPrefixedDecoder` and `Utf16Decoder` for the string encodings
  game protocols use.
- `gamedig.packet`, `gamedig.pcap` and `gamedig.capture`: capture of the
  traffic a socket sends and receives into a pcapng file that tools such as
  Wireshark can open.
- `gamedig.idrules`: the rules that decide what a game's identifier should
  be, a checker for lists of games, and the `gamedig-id-check` command.

## Installing

```
pip install .
```

The package uses only the standard library. To run the tests:

```
pip install ".[test]"
pytest
```

## Errors

Every failure is raised as `GDError`, which carries a `kind` (an
`ErrorKind`), an optional `source` and a `backtrace`. Two errors compare
equal when their kinds are equal.

```python
from gamedig.errors import ErrorKind, GDError

error = ErrorKind.PacketBad.context("Reason the packet was bad")
assert error.kind is ErrorKind.PacketBad
assert error == GDError(ErrorKind.PacketBad)
```

When the source is an exception it also becomes the error's `__cause__`.
The backtrace is only recorded when the environment variable
`GAMEDIG_BACKTRACE` is set to something other than `0`; otherwise it reads
`<disabled>`.

## Reading packets

```python
from gamedig.buffer import Buffer, ByteOrder, Utf8Decoder, Utf16Decoder

buffer = Buffer(b"\x01\x02Hello\x00", ByteOrder.LITTLE)
assert buffer.read("u16") == 0x0201
assert buffer.read_string(Utf8Decoder()) == "Hello"
assert buffer.remaining_length() == 0
```

`read` accepts `u8`, `i8`, `u16`, `i16`, `u32`, `i32`, `u64`, `i64`, `f32`
and `f64`. Reading more bytes than remain raises a `PacketUnderflow` error;
moving the cursor out of bounds with `move_cursor` raises `PacketBad`, as
does undecodable string data. `read_string` takes an optional `until`
delimiter in place of the decoder's default (one NUL byte for the UTF-8
decoders, two for `Utf16Decoder`). `switch_endian_chunk(size)` takes the
next `size` bytes as a new `Buffer` of the opposite byte order.

## Packet capture

`gamedig.capture.setup_capture(path)` creates a new capture file (the path
with its suffix replaced by `.pcap`; an existing file is never overwritten),
writes the pcapng headers, installs a `Pcap` writer as the process-wide
capture writer and returns it. Passing `None` does nothing.

Wrap a connected socket object in `CaptureSocket(inner, remote_address,
protocol)` to have its traffic recorded. The inner object must provide
`send(data)`, `receive(size)` and `local_addr()`; `close()` (also called on
leaving a `with` block) records the end of the connection and closes the
inner object if it has a `close` method.

TCP handshakes, ACKs and FINs, and the IP and Ethernet headers, are
generated so the streams display nicely; they are not the packets that were
really on the wire. `set_writer`, `get_writer` and `clear_writer` manage
the global writer directly; installing a second writer while one is set
raises `RuntimeError`. Any object with `write`, `new_connect` and
`close_connection` methods can serve as a writer.

## Game identifier rules

A game's identifier is a lower-case alphanumeric string derived from its
name:

1. Names of at most two words are concatenated (`Dead Cells` → `deadcells`).
2. Longer names become an acronym (`The Binding of Isaac` → `tboi`);
   hyphenated parts count as separate words (`Dino D-Day` → `ddd`).
3. A game with the same name as an existing one gets its release year
   appended (`Star Wars Battlefront 2 (2015)` → `swb2`, then
   `Star Wars Battlefront 2 (2017)` → `swb22017`).
4. If the acronym is already taken, the full words are used instead
   (`Day of Dragons` → `dayofdragons` after `Day of Defeat` → `dod`).
5. Roman numerals become arabic numbers (`Grand Theft Auto XIV` → `gta14`).
6. Numbers are words of their own (`Left 4 Dead` → `l4d`), spelled out at
   the start (`7 Days to Die` → `sdtd`) and appended whole at the end
   (`Team Fortress 2` → `teamfortress2`).
7. Several protocols for one game get the edition appended
   (`Minecraft (java)` → `minecraftjava`).
8. For a mod that adds query support only the mod's name is used
   (`Grand Theft Auto V - FiveM (2013)` → `fivem`).

```python
from gamedig.idrules import check_single_game_rule, check_game_name_rules

assert check_single_game_rule("deadcells", "Dead Cells") == []

failures = check_game_name_rules([
    ("dod", "Day of Defeat"),
    ("dayofdragons", "Day of Dragons"),
])
for failure in failures:
    print(failure.game_id, "should be", failure.expected_id, failure.rule_stack)
```

Each failure is an `IDFail` naming the identifier given, the game's name,
the identifier the rules expect and the `IDRule`s that were applied. The
checker prints every failure and a summary line when there are any.

From the command line, give a JSON file mapping identifiers to objects with
a `name` field, or pipe the same JSON to standard input:

```
gamedig-id-check games.json
```

```json
{
  "minecraft": {"name": "Minecraft"},
  "teamfortress2": {"name": "Team Fortress 2"}
}
```

The command exits with status 1 when any identifier breaks the rules and 0
otherwise.

## What this package does not do

It does not query game servers: there are no game protocol implementations,
no list of supported games and no command for querying a server. It also
provides no socket implementation of its own; `CaptureSocket` wraps one you
supply.