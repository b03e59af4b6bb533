"""Record shapes for every F1 25 UDP packet kind.

Field names follow the game's published struct names minus the ``m_``
prefix (``Speed``, ``EngineRPM``, ``TyresPressure``...).
"""

from __future__ import annotations

import enum

from .schema import F32, F64, I8, I16, U8, U16, U32, U64, Array, Chars, Record

# Every car-indexed array on the wire has this many slots, active or not.
CAR_SLOTS = 22
# A frame shorter than this cannot even carry the discriminant + frame ids.
MIN_FRAME_LENGTH = 24
PACKET_ID_OFFSET = 6
PLAYER_CAR_INDEX_OFFSET = 27


class PacketKind(enum.IntEnum):
    Motion = 0
    Session = 1
    LapData = 2
    Event = 3
    Participants = 4
    CarSetups = 5
    CarTelemetry = 6
    CarStatus = 7
    FinalClassification = 8
    LobbyInfo = 9
    CarDamage = 10
    SessionHistory = 11
    TyreSets = 12
    MotionEx = 13
    TimeTrial = 14
    LapPositions = 15


class PacketHeader(Record):
    FIELDS = (
        ("PacketFormat", U16),
        ("GameYear", U8),
        ("GameMajorVersion", U8),
        ("GameMinorVersion", U8),
        ("PacketVersion", U8),
        ("PacketId", U8),
        ("SessionUID", U64),
        ("SessionTime", F32),
        ("FrameIdentifier", U32),
        ("OverallFrameIdentifier", U32),
        ("PlayerCarIndex", U8),
        ("SecondaryPlayerCarIndex", U8),
    )


HEADER = ("Header", PacketHeader)


# ---- Motion -----------------------------------------------------------------


class CarMotionData(Record):
    FIELDS = (
        ("WorldPositionX", F32),
        ("WorldPositionY", F32),
        ("WorldPositionZ", F32),
        ("WorldVelocityX", F32),
        ("WorldVelocityY", F32),
        ("WorldVelocityZ", F32),
        ("WorldForwardDirX", I16),
        ("WorldForwardDirY", I16),
        ("WorldForwardDirZ", I16),
        ("WorldRightDirX", I16),
        ("WorldRightDirY", I16),
        ("WorldRightDirZ", I16),
        ("GForceLateral", F32),
        ("GForceLongitudinal", F32),
        ("GForceVertical", F32),
        ("Yaw", F32),
        ("Pitch", F32),
        ("Roll", F32),
    )


class MotionPacket(Record):
    FIELDS = (HEADER, ("CarMotionData", Array(CarMotionData, CAR_SLOTS)))


# ---- Session ----------------------------------------------------------------


class MarshalZone(Record):
    FIELDS = (("ZoneStart", F32), ("ZoneFlag", I8))


class WeatherForecastSample(Record):
    FIELDS = (
        ("SessionType", U8),
        ("TimeOffset", U8),
        ("Weather", U8),
        ("TrackTemperature", I8),
        ("TrackTemperatureChange", I8),
        ("AirTemperature", I8),
        ("AirTemperatureChange", I8),
        ("RainPercentage", U8),
    )


_SESSION_RULE_FLAGS = (
    "SessionLength",
    "SpeedUnitsLeadPlayer",
    "TemperatureUnitsLeadPlayer",
    "SpeedUnitsSecondaryPlayer",
    "TemperatureUnitsSecondaryPlayer",
    "NumSafetyCarPeriods",
    "NumVirtualSafetyCarPeriods",
    "NumRedFlagPeriods",
    "EqualCarPerformance",
    "RecoveryMode",
    "FlashbackLimit",
    "SurfaceType",
    "LowFuelMode",
    "RaceStarts",
    "TyreTemperature",
    "PitLaneTyreSim",
    "CarDamage",
    "CarDamageRate",
    "Collisions",
    "CollisionsOffForFirstLapOnly",
    "MpUnsafePitRelease",
    "MpOffForGriefing",
    "CornerCuttingStringency",
    "ParcFermeRules",
    "PitStopExperience",
    "SafetyCar",
    "SafetyCarExperience",
    "FormationLap",
    "FormationLapExperience",
    "RedFlags",
    "AffectsLicenceLevelSolo",
    "AffectsLicenceLevelMP",
    "NumSessionsInWeekend",
)


class SessionPacket(Record):
    FIELDS = (
        HEADER,
        ("Weather", U8),
        ("TrackTemperature", I8),
        ("AirTemperature", I8),
        ("TotalLaps", U8),
        ("TrackLength", U16),
        ("SessionType", U8),
        ("TrackId", I8),
        ("Formula", U8),
        ("SessionTimeLeft", U16),
        ("SessionDuration", U16),
        ("PitSpeedLimit", U8),
        ("GamePaused", U8),
        ("IsSpectating", U8),
        ("SpectatorCarIndex", U8),
        ("SliProNativeSupport", U8),
        ("NumMarshalZones", U8),
        ("MarshalZones", Array(MarshalZone, 21)),
        ("SafetyCarStatus", U8),
        ("NetworkGame", U8),
        ("NumWeatherForecastSamples", U8),
        ("WeatherForecastSamples", Array(WeatherForecastSample, 64)),
        ("ForecastAccuracy", U8),
        ("AIDifficulty", U8),
        ("SeasonLinkIdentifier", U32),
        ("WeekendLinkIdentifier", U32),
        ("SessionLinkIdentifier", U32),
        ("PitStopWindowIdealLap", U8),
        ("PitStopWindowLatestLap", U8),
        ("PitStopRejoinPosition", U8),
        ("SteeringAssist", U8),
        ("BrakingAssist", U8),
        ("GearboxAssist", U8),
        ("PitAssist", U8),
        ("PitReleaseAssist", U8),
        ("ERSAssist", U8),
        ("DRSAssist", U8),
        ("DynamicRacingLine", U8),
        ("DynamicRacingLineType", U8),
        ("GameMode", U8),
        ("RuleSet", U8),
        ("TimeOfDay", U32),
    ) + tuple((name, U8) for name in _SESSION_RULE_FLAGS) + (
        ("WeekendStructure", Array(U8, 12)),
        ("Sector2LapDistanceStart", F32),
        ("Sector3LapDistanceStart", F32),
    )


# ---- Lap data ---------------------------------------------------------------


class LapData(Record):
    FIELDS = (
        ("LastLapTimeInMS", U32),
        ("CurrentLapTimeInMS", U32),
        ("Sector1TimeMSPart", U16),
        ("Sector1TimeMinutesPart", U8),
        ("Sector2TimeMSPart", U16),
        ("Sector2TimeMinutesPart", U8),
        ("DeltaToCarInFrontMSPart", U16),
        ("DeltaToCarInFrontMinutesPart", U8),
        ("DeltaToRaceLeaderMSPart", U16),
        ("DeltaToRaceLeaderMinutesPart", U8),
        ("LapDistance", F32),
        ("TotalDistance", F32),
        ("SafetyCarDelta", F32),
        ("CarPosition", U8),
        ("CurrentLapNum", U8),
        ("PitStatus", U8),
        ("NumPitStops", U8),
        ("Sector", U8),
        ("CurrentLapInvalid", U8),
        ("Penalties", U8),
        ("TotalWarnings", U8),
        ("CornerCuttingWarnings", U8),
        ("NumUnservedDriveThroughPens", U8),
        ("NumUnservedStopGoPens", U8),
        ("GridPosition", U8),
        ("DriverStatus", U8),
        ("ResultStatus", U8),
        ("PitLaneTimerActive", U8),
        ("PitLaneTimeInLaneInMS", U16),
        ("PitStopTimerInMS", U16),
        ("PitStopShouldServePen", U8),
        ("SpeedTrapFastestSpeed", F32),
        ("SpeedTrapFastestLap", U8),
    )


class LapDataPacket(Record):
    FIELDS = (
        HEADER,
        ("LapData", Array(LapData, CAR_SLOTS)),
        ("TimeTrialPBCarIdx", U8),
        ("TimeTrialRivalCarIdx", U8),
    )


# ---- Event ------------------------------------------------------------------


class EventPacket(Record):
    # The details block is a union keyed on the string code ("FTLP",
    # "PENA", ...); it is forwarded as raw bytes.
    FIELDS = (
        HEADER,
        ("EventStringCode", Chars(4)),
        ("EventDetails", Array(U8, 12)),
    )


# ---- Participants -----------------------------------------------------------


class LiveryColour(Record):
    FIELDS = (("Red", U8), ("Green", U8), ("Blue", U8))


class ParticipantData(Record):
    FIELDS = (
        ("AIControlled", U8),
        ("DriverId", U8),
        ("NetworkId", U8),
        ("TeamId", U8),
        ("MyTeam", U8),
        ("RaceNumber", U8),
        ("Nationality", U8),
        ("Name", Chars(32)),
        ("YourTelemetry", U8),
        ("ShowOnlineNames", U8),
        ("TechLevel", U16),
        ("Platform", U8),
        ("NumColours", U8),
        ("LiveryColours", Array(LiveryColour, 4)),
    )


class ParticipantsPacket(Record):
    FIELDS = (
        HEADER,
        ("NumActiveCars", U8),
        ("Participants", Array(ParticipantData, CAR_SLOTS)),
    )


# ---- Car setups -------------------------------------------------------------


class CarSetupData(Record):
    FIELDS = (
        ("FrontWing", U8),
        ("RearWing", U8),
        ("OnThrottle", U8),
        ("OffThrottle", U8),
        ("FrontCamber", F32),
        ("RearCamber", F32),
        ("FrontToe", F32),
        ("RearToe", F32),
        ("FrontSuspension", U8),
        ("RearSuspension", U8),
        ("FrontAntiRollBar", U8),
        ("RearAntiRollBar", U8),
        ("FrontSuspensionHeight", U8),
        ("RearSuspensionHeight", U8),
        ("BrakePressure", U8),
        ("BrakeBias", U8),
        ("EngineBraking", U8),
        ("RearLeftTyrePressure", F32),
        ("RearRightTyrePressure", F32),
        ("FrontLeftTyrePressure", F32),
        ("FrontRightTyrePressure", F32),
        ("Ballast", U8),
        ("FuelLoad", F32),
    )


class CarSetupsPacket(Record):
    FIELDS = (
        HEADER,
        ("CarSetupData", Array(CarSetupData, CAR_SLOTS)),
        ("NextFrontWingValue", F32),
    )


# ---- Car telemetry ----------------------------------------------------------


class CarTelemetryData(Record):
    FIELDS = (
        ("Speed", U16),
        ("Throttle", F32),
        ("Steer", F32),
        ("Brake", F32),
        ("Clutch", U8),
        ("Gear", I8),
        ("EngineRPM", U16),
        ("DRS", U8),
        ("RevLightsPercent", U8),
        ("RevLightsBitValue", U16),
        ("BrakesTemperature", Array(U16, 4)),
        ("TyresSurfaceTemperature", Array(U8, 4)),
        ("TyresInnerTemperature", Array(U8, 4)),
        ("EngineTemperature", U16),
        ("TyresPressure", Array(F32, 4)),
        ("SurfaceType", Array(U8, 4)),
    )


class CarTelemetryPacket(Record):
    """Header plus the player's car only; the other 21 slots are skipped."""

    FIELDS = (HEADER, ("CarTelemetryData", CarTelemetryData))


# ---- Car status -------------------------------------------------------------


class CarStatusData(Record):
    FIELDS = (
        ("TractionControl", U8),
        ("AntiLockBrakes", U8),
        ("FuelMix", U8),
        ("FrontBrakeBias", U8),
        ("PitLimiterStatus", U8),
        ("FuelInTank", F32),
        ("FuelCapacity", F32),
        ("FuelRemainingLaps", F32),
        ("MaxRPM", U16),
        ("IdleRPM", U16),
        ("MaxGears", U8),
        ("DRSAllowed", U8),
        ("DRSActivationDistance", U16),
        ("ActualTyreCompound", U8),
        ("VisualTyreCompound", U8),
        ("TyresAgeLaps", U8),
        ("VehicleFIAFlags", I8),
        ("EnginePowerICE", F32),
        ("EnginePowerMGUK", F32),
        ("ERSStoreEnergy", F32),
        ("ERSDeployMode", U8),
        ("ERSHarvestedThisLapMGUK", F32),
        ("ERSHarvestedThisLapMGUH", F32),
        ("ERSDeployedThisLap", F32),
        ("NetworkPaused", U8),
    )


class CarStatusPacket(Record):
    FIELDS = (HEADER, ("CarStatusData", Array(CarStatusData, CAR_SLOTS)))


# ---- Final classification ---------------------------------------------------


class FinalClassificationData(Record):
    FIELDS = (
        ("Position", U8),
        ("NumLaps", U8),
        ("GridPosition", U8),
        ("Points", U8),
        ("NumPitStops", U8),
        ("ResultStatus", U8),
        ("ResultReason", U8),
        ("BestLapTimeInMS", U32),
        ("TotalRaceTime", F64),
        ("PenaltiesTime", U8),
        ("NumPenalties", U8),
        ("NumTyreStints", U8),
        ("TyreStintsActual", Array(U8, 8)),
        ("TyreStintsVisual", Array(U8, 8)),
        ("TyreStintsEndLaps", Array(U8, 8)),
    )


class FinalClassificationPacket(Record):
    FIELDS = (
        HEADER,
        ("NumCars", U8),
        ("ClassificationData", Array(FinalClassificationData, CAR_SLOTS)),
    )


# ---- Lobby ------------------------------------------------------------------


class LobbyInfoData(Record):
    FIELDS = (
        ("AIControlled", U8),
        ("TeamId", U8),
        ("Nationality", U8),
        ("Platform", U8),
        ("Name", Chars(32)),
        ("CarNumber", U8),
        ("YourTelemetry", U8),
        ("ShowOnlineNames", U8),
        ("TechLevel", U16),
        ("ReadyStatus", U8),
    )


class LobbyInfoPacket(Record):
    FIELDS = (
        HEADER,
        ("NumPlayers", U8),
        ("LobbyPlayers", Array(LobbyInfoData, CAR_SLOTS)),
    )


# ---- Car damage -------------------------------------------------------------


class CarDamageData(Record):
    FIELDS = (
        ("TyresWear", Array(F32, 4)),
        ("TyresDamage", Array(U8, 4)),
        ("BrakesDamage", Array(U8, 4)),
        ("TyreBlisters", Array(U8, 4)),
    ) + tuple(
        (name, U8)
        for name in (
            "FrontLeftWingDamage",
            "FrontRightWingDamage",
            "RearWingDamage",
            "FloorDamage",
            "DiffuserDamage",
            "SidepodDamage",
            "DRSFault",
            "ERSFault",
            "GearBoxDamage",
            "EngineDamage",
            "EngineMGUHWear",
            "EngineESWear",
            "EngineCEWear",
            "EngineICEWear",
            "EngineMGUKWear",
            "EngineTCWear",
            "EngineBlown",
            "EngineSeized",
        )
    )


class CarDamagePacket(Record):
    FIELDS = (HEADER, ("CarDamageData", Array(CarDamageData, CAR_SLOTS)))


# ---- Session history --------------------------------------------------------


class LapHistoryData(Record):
    FIELDS = (
        ("LapTimeInMS", U32),
        ("Sector1TimeMSPart", U16),
        ("Sector1TimeMinutesPart", U8),
        ("Sector2TimeMSPart", U16),
        ("Sector2TimeMinutesPart", U8),
        ("Sector3TimeMSPart", U16),
        ("Sector3TimeMinutesPart", U8),
        ("LapValidBitFlags", U8),
    )


class TyreStintHistoryData(Record):
    FIELDS = (
        ("EndLap", U8),
        ("TyreActualCompound", U8),
        ("TyreVisualCompound", U8),
    )


class SessionHistoryPacket(Record):
    FIELDS = (
        HEADER,
        ("CarIdx", U8),
        ("NumLaps", U8),
        ("NumTyreStints", U8),
        ("BestLapTimeLapNum", U8),
        ("BestSector1LapNum", U8),
        ("BestSector2LapNum", U8),
        ("BestSector3LapNum", U8),
        ("LapHistoryData", Array(LapHistoryData, 100)),
        ("TyreStintsHistoryData", Array(TyreStintHistoryData, 8)),
    )


# ---- Tyre sets --------------------------------------------------------------


class TyreSetData(Record):
    FIELDS = (
        ("ActualTyreCompound", U8),
        ("VisualTyreCompound", U8),
        ("Wear", U8),
        ("Available", U8),
        ("RecommendedSession", U8),
        ("LifeSpan", U8),
        ("UsableLife", U8),
        ("LapDeltaTime", I16),
        ("Fitted", U8),
    )


class TyreSetsPacket(Record):
    FIELDS = (
        HEADER,
        ("CarIdx", U8),
        ("TyreSetData", Array(TyreSetData, 20)),
        ("FittedIdx", U8),
    )


# ---- Extended motion (player car only) --------------------------------------


_WHEELS = Array(F32, 4)


class MotionExPacket(Record):
    FIELDS = (
        HEADER,
        ("SuspensionPosition", _WHEELS),
        ("SuspensionVelocity", _WHEELS),
        ("SuspensionAcceleration", _WHEELS),
        ("WheelSpeed", _WHEELS),
        ("WheelSlipRatio", _WHEELS),
        ("WheelSlipAngle", _WHEELS),
        ("WheelLatForce", _WHEELS),
        ("WheelLongForce", _WHEELS),
        ("HeightOfCOGAboveGround", F32),
        ("LocalVelocityX", F32),
        ("LocalVelocityY", F32),
        ("LocalVelocityZ", F32),
        ("AngularVelocityX", F32),
        ("AngularVelocityY", F32),
        ("AngularVelocityZ", F32),
        ("AngularAccelerationX", F32),
        ("AngularAccelerationY", F32),
        ("AngularAccelerationZ", F32),
        ("FrontWheelsAngle", F32),
        ("WheelVertForce", _WHEELS),
        ("FrontAeroHeight", F32),
        ("RearAeroHeight", F32),
        ("FrontRollAngle", F32),
        ("RearRollAngle", F32),
        ("ChassisYaw", F32),
        ("ChassisPitch", F32),
        ("WheelCamber", _WHEELS),
        ("WheelCamberGain", _WHEELS),
    )


# ---- Time trial -------------------------------------------------------------


class TimeTrialDataSet(Record):
    FIELDS = (
        ("CarIdx", U8),
        ("TeamId", U8),
        ("LapTimeInMS", U32),
        ("Sector1TimeInMS", U32),
        ("Sector2TimeInMS", U32),
        ("Sector3TimeInMS", U32),
        ("TractionControl", U8),
        ("GearboxAssist", U8),
        ("AntiLockBrakes", U8),
        ("EqualCarPerformance", U8),
        ("CustomSetup", U8),
        ("Valid", U8),
    )


class TimeTrialPacket(Record):
    FIELDS = (
        HEADER,
        ("PlayerSessionBestDataSet", TimeTrialDataSet),
        ("PersonalBestDataSet", TimeTrialDataSet),
        ("RivalDataSet", TimeTrialDataSet),
    )


# ---- Lap positions ----------------------------------------------------------


class LapPositionsPacket(Record):
    FIELDS = (
        HEADER,
        ("NumLaps", U8),
        ("LapStart", U8),
        ("PositionForVehicleIdx", Array(Array(U8, CAR_SLOTS), 50)),
    )


PACKET_RECORDS = {
    PacketKind.Motion: MotionPacket,
    PacketKind.Session: SessionPacket,
    PacketKind.LapData: LapDataPacket,
    PacketKind.Event: EventPacket,
    PacketKind.Participants: ParticipantsPacket,
    PacketKind.CarSetups: CarSetupsPacket,
    PacketKind.CarTelemetry: CarTelemetryPacket,
    PacketKind.CarStatus: CarStatusPacket,
    PacketKind.FinalClassification: FinalClassificationPacket,
    PacketKind.LobbyInfo: LobbyInfoPacket,
    PacketKind.CarDamage: CarDamagePacket,
    PacketKind.SessionHistory: SessionHistoryPacket,
    PacketKind.TyreSets: TyreSetsPacket,
    PacketKind.MotionEx: MotionExPacket,
    PacketKind.TimeTrial: TimeTrialPacket,
    PacketKind.LapPositions: LapPositionsPacket,
}

# Bytes a frame must carry before we decode it.  All but CarTelemetry equal
# the packed record size; CarTelemetry frames carry all 22 car slots plus
# trailing MFD/gear fields even though only one slot is extracted.
EXPECTED_LENGTHS = {kind: record.size for kind, record in PACKET_RECORDS.items()}
EXPECTED_LENGTHS[PacketKind.CarTelemetry] = 1381

CAR_TELEMETRY_SLOT_SIZE = CarTelemetryData.size
